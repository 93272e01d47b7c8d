"""Tests for pacing between operations."""

import logging

from spretain.throttle.pacing import Pacer, PacingConfig


class TestPacer:
    """Tests for Pacer."""

    def test_zero_duration_is_silent_noop(self, caplog):
        waits = []
        pacer = Pacer(sleep=waits.append)

        with caplog.at_level(logging.DEBUG, logger="spretain.throttle.pacing"):
            pacer.pace(0, "between items")

        assert waits == []
        assert caplog.records == []

    def test_negative_duration_is_noop(self):
        waits = []
        Pacer(sleep=waits.append).pace(-5, "x")
        assert waits == []

    def test_positive_duration_sleeps_and_logs_once(self, caplog):
        waits = []
        pacer = Pacer(sleep=waits.append)

        with caplog.at_level(logging.DEBUG, logger="spretain.throttle.pacing"):
            pacer.pace(500, "between lists")

        assert waits == [0.5]
        assert len(caplog.records) == 1
        assert caplog.records[0].levelno == logging.DEBUG
        assert "500ms" in caplog.records[0].getMessage()

    def test_level_helpers_use_config(self):
        waits = []
        pacer = Pacer(
            PacingConfig(item_delay_ms=10, list_delay_ms=200, site_delay_ms=3000),
            sleep=waits.append,
        )

        pacer.between_items()
        pacer.between_lists()
        pacer.between_sites()

        assert waits == [0.01, 0.2, 3.0]

    def test_disabled_level(self):
        waits = []
        pacer = Pacer(PacingConfig(item_delay_ms=0), sleep=waits.append)

        pacer.between_items()

        assert waits == []

    def test_default_config(self):
        config = PacingConfig()

        assert config.item_delay_ms == 100
        assert config.list_delay_ms == 500
        assert config.site_delay_ms == 2000
