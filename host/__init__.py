"""Websocket table host that seats remote deciders around a cardroom engine."""

from .server import ClientSession, HostServer, PendingAction

__all__ = ["ClientSession", "HostServer", "PendingAction"]
