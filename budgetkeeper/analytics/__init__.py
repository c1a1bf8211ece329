"""Spending analytics engine: patterns, recommendations, anomalies and forecasts."""
