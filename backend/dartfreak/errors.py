"""Domain exceptions.

Every error raised by the services carries the HTTP status the API should
answer with, so blueprints can map them uniformly. Busts and checkouts are
game outcomes, not errors, and never appear here.
"""


class DartFreakError(Exception):
    status_code = 400

    def __init__(self, message=None, **details):
        super().__init__(message or self.__class__.__doc__ or self.__class__.__name__)
        self.message = message or (self.__class__.__doc__ or self.__class__.__name__).strip()
        self.details = details

    def to_dict(self):
        payload = {'error': self.message}
        payload.update(self.details)
        return payload


class InvalidThrowInput(DartFreakError, ValueError):
    """Invalid dart value"""


class InvalidGameSetup(DartFreakError, ValueError):
    """Invalid game setup"""


# ---- Remote matches ----

class RemoteMatchError(DartFreakError):
    """Remote match error"""


class NotAuthorized(RemoteMatchError):
    """Not authorized for this match"""
    status_code = 403


class MatchNotFound(RemoteMatchError):
    """Match not found"""
    status_code = 404


class InvalidStatus(RemoteMatchError):
    """Match is not in a valid state for this action"""
    status_code = 409


class TurnNotOwned(RemoteMatchError):
    """Not your turn"""
    status_code = 409


class StaleTurn(RemoteMatchError):
    """Visit was computed against a stale score"""
    status_code = 409


class AlreadyHasActiveMatch(RemoteMatchError):
    """You already have an active match. Cancel/Abort or wait for it to expire."""
    status_code = 409


class MatchExpired(RemoteMatchError):
    """Match has expired"""
    status_code = 410


class MatchCancelled(RemoteMatchError):
    """Match was cancelled"""
    status_code = 410


# ---- Friends ----

class FriendsError(DartFreakError):
    """Friends error"""


class UserNotFound(FriendsError):
    """User not found"""
    status_code = 404


class AlreadyFriends(FriendsError):
    """You are already friends"""
    status_code = 409


class RequestPending(FriendsError):
    """A friend request is already pending"""
    status_code = 409


class UserBlocked(FriendsError):
    """This user is blocked"""
    status_code = 403


class RequestNotFound(FriendsError):
    """Friend request not found"""
    status_code = 404


class InvalidInvite(FriendsError):
    """Invite cannot be claimed"""
    status_code = 400
