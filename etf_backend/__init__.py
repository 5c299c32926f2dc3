"""ETF price service: price sync, basket index, alerts and realtime fan-out."""
