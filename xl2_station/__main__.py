"""Allow ``python -m xl2_station`` to launch the station."""

from xl2_station.app.main import run

if __name__ == "__main__":
    raise SystemExit(run())
