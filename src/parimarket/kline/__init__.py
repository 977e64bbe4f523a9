"""Odds klines: bucketed OHLC of quoted odds."""

from parimarket.kline.recorder import OddsRecorder, fold_sample, validate_interval

__all__ = ["OddsRecorder", "fold_sample", "validate_interval"]
