"""Routers package."""

from . import (
    health,
    external_shares,
    public_share,
)
