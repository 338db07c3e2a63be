"""Protocol errors reported back to the offending connection.

Every error carries the human readable text the client shows verbatim.
None of them close the connection.
"""
from __future__ import annotations

from typing import Optional


class LobbyError(Exception):
    message = "Error."

    def __init__(self, message: Optional[str] = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class InvalidConnection(LobbyError):
    message = "Cliente inválido."


class AlreadyInRoom(LobbyError):
    message = "Ya estás en una sala."


class NotInRoom(LobbyError):
    # Never surfaced to the client; commands that need a room are no-ops.
    message = "No estás en una sala."


class NoSuchRoom(LobbyError):
    message = "Sala no existe."


class RoomFull(LobbyError):
    message = "Sala llena."


class WeakPassword(LobbyError):
    message = "Contraseña muy corta (mínimo 3)."


class BadCode(LobbyError):
    message = "Código incorrecto."


class BadPassword(LobbyError):
    message = "Contraseña incorrecta."


class UnknownMessageKind(LobbyError):
    message = "Tipo desconocido."
