"""Recoverable coordinator errors.

Every error is reported to the originating connection as an ``error``
event carrying ``code`` and ``message``; none of them tears down the
connection or the room.
"""


class CoordinatorError(Exception):
    code = 'CoordinatorError'
    default_message = 'Request could not be processed'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self):
        return {'code': self.code, 'message': self.message}


class RoomNotFound(CoordinatorError):
    code = 'RoomNotFound'
    default_message = 'Room not found'


class IdentityMissing(CoordinatorError):
    code = 'IdentityMissing'
    default_message = 'A name and user id are required'


class TeamRequired(CoordinatorError):
    code = 'TeamRequired'
    default_message = 'Pick a team to join this room'


class NotHost(CoordinatorError):
    code = 'NotHost'
    default_message = 'Only the host can do that'


class DuplicateBuzz(CoordinatorError):
    code = 'DuplicateBuzz'
    default_message = 'Already buzzed this round'


class BuzzersClosed(CoordinatorError):
    code = 'BuzzersClosed'
    default_message = 'Buzzers are closed'


class InvalidPhase(CoordinatorError):
    code = 'InvalidPhase'
    default_message = 'Not allowed right now'


class NotInRoom(CoordinatorError):
    code = 'NotInRoom'
    default_message = 'You are not in this room'


class NotEligible(CoordinatorError):
    code = 'NotEligible'
    default_message = 'Spectators cannot buzz'


class CapacityExceeded(CoordinatorError):
    code = 'CapacityExceeded'
    default_message = 'Server is full'


class MalformedMessage(CoordinatorError):
    code = 'MalformedMessage'
    default_message = 'Malformed message'
