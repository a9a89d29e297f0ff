"""Ingestion layer.

Turns raw relay payloads into validated :class:`~speedwatch.models.PositionSample`
instances and applies the subscription-level delivery filters.
"""
