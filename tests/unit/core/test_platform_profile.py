"""Unit tests for platform tier detection."""

from __future__ import annotations

import sys

import pytest

from xl2_station.core import platform_profile
from xl2_station.core.errors import ConfigError
from xl2_station.core.platform_profile import (
    PlatformTier,
    classify_model,
    get_platform_profile,
    profile_for_tier,
    read_model_signature,
    reset_platform_profile,
    resolve_platform_profile,
)


class TestClassifyModel:

    @pytest.mark.parametrize(
        "model, tier",
        [
            ("Raspberry Pi 5 Model B Rev 1.0", PlatformTier.PI5),
            ("Raspberry Pi 4 Model B Rev 1.4", PlatformTier.PI4),
            ("Raspberry Pi Compute Module 4 Rev 1.0", PlatformTier.PI4),
            ("Raspberry Pi 3 Model B Plus Rev 1.3", PlatformTier.PI3),
            ("Raspberry Pi Zero 2 W Rev 1.0", PlatformTier.PI_ZERO),
            ("Raspberry Pi Zero W Rev 1.1", PlatformTier.PI_ZERO),
            ("Generic x86 board", PlatformTier.UNKNOWN),
            ("", PlatformTier.UNKNOWN),
            (None, PlatformTier.UNKNOWN),
        ],
    )
    def test_tiers(self, model, tier):
        assert classify_model(model) is tier


class TestReadModelSignature:

    def test_reads_first_available_path(self, tmp_path, monkeypatch):
        monkeypatch.setattr(sys, "platform", "linux")
        model = tmp_path / "model"
        model.write_bytes(b"Raspberry Pi 4 Model B Rev 1.4\x00")

        assert read_model_signature([str(tmp_path / "missing"), str(model)]) == (
            "Raspberry Pi 4 Model B Rev 1.4"
        )

    def test_empty_file_is_skipped(self, tmp_path, monkeypatch):
        monkeypatch.setattr(sys, "platform", "linux")
        empty = tmp_path / "empty"
        empty.write_text("")

        assert read_model_signature([str(empty)]) is None

    def test_non_linux_host(self, tmp_path, monkeypatch):
        monkeypatch.setattr(sys, "platform", "darwin")
        model = tmp_path / "model"
        model.write_text("Raspberry Pi 5 Model B")

        assert read_model_signature([str(model)]) is None


class TestResolveProfile:

    def test_unreadable_signature_gives_unknown(self, tmp_path):
        profile = resolve_platform_profile(model_paths=[str(tmp_path / "nope")])

        assert profile.tier is PlatformTier.UNKNOWN
        assert profile.model is None

    def test_unknown_has_most_conservative_limits(self):
        unknown = profile_for_tier(PlatformTier.UNKNOWN)
        known = [profile_for_tier(tier) for tier in PlatformTier if tier is not PlatformTier.UNKNOWN]

        assert unknown.max_clients == min(p.max_clients for p in known)
        assert unknown.min_disk_space_mb <= min(p.min_disk_space_mb for p in known)
        assert unknown.max_temperature_warning_c == min(p.max_temperature_warning_c for p in known)
        assert unknown.max_temperature_critical_c == min(p.max_temperature_critical_c for p in known)

    def test_warning_below_critical_for_every_tier(self):
        for tier in PlatformTier:
            profile = profile_for_tier(tier)
            assert profile.max_temperature_warning_c < profile.max_temperature_critical_c

    def test_overrides_replace_tier_defaults(self, tmp_path, monkeypatch):
        monkeypatch.setattr(sys, "platform", "linux")
        model = tmp_path / "model"
        model.write_text("Raspberry Pi 4 Model B Rev 1.4")

        profile = resolve_platform_profile(
            model_paths=[str(model)],
            overrides={"max_clients": 3, "monitoring_interval_ms": 500},
        )

        assert profile.tier is PlatformTier.PI4
        assert profile.max_clients == 3
        assert profile.monitoring_interval == 0.5
        assert profile.max_temperature_warning_c == 70.0

    def test_warning_override_above_tier_critical_rejected(self, tmp_path, monkeypatch):
        monkeypatch.setattr(sys, "platform", "linux")
        model = tmp_path / "model"
        model.write_text("Raspberry Pi 4 Model B Rev 1.4")

        with pytest.raises(ConfigError) as exc_info:
            resolve_platform_profile(
                model_paths=[str(model)], overrides={"max_temperature_warning_c": 82.0}
            )

        assert exc_info.value.key == "temperature_warning_c"

    def test_critical_override_below_tier_warning_rejected(self, tmp_path):
        with pytest.raises(ConfigError) as exc_info:
            resolve_platform_profile(
                model_paths=[str(tmp_path / "nope")], overrides={"max_temperature_critical_c": 55.0}
            )

        assert exc_info.value.key == "temperature_critical_c"

    def test_to_dict(self):
        data = profile_for_tier(PlatformTier.PI5, "Raspberry Pi 5").to_dict()

        assert data["tier"] == "pi5"
        assert data["maxClients"] == 15
        assert data["model"] == "Raspberry Pi 5"


class TestProfileCache:

    def test_resolved_once(self, monkeypatch):
        calls = []

        def fake_resolve(model_paths=platform_profile.MODEL_PATHS, overrides=None):
            calls.append(overrides)
            return profile_for_tier(PlatformTier.PI3)

        monkeypatch.setattr(platform_profile, "resolve_platform_profile", fake_resolve)

        first = get_platform_profile()
        second = get_platform_profile({"max_clients": 1})

        assert first is second
        assert len(calls) == 1

    def test_reset_forces_detection(self, monkeypatch):
        monkeypatch.setattr(
            platform_profile,
            "resolve_platform_profile",
            lambda model_paths=None, overrides=None: profile_for_tier(PlatformTier.PI_ZERO),
        )
        first = get_platform_profile()

        reset_platform_profile()

        assert get_platform_profile() is not first
