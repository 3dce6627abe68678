"""
Services module for the ingestion pipeline.

This module organizes services into:
- provider_client / circuit_breaker: score-provider HTTP access
- box_score_parser / stats_calculator: pure payload parsing and formulas
- discovery / game_status_poller / game_queue: the game lifecycle
- box_score_sync / aggregation / rankings: box scores and season stats
- live_sync / backfill: on-demand sync and season bootstrap
- player_stats_reconciliation: daily patch of player season lines
"""
