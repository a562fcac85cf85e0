import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    # Comma-separated list of origins allowed to open sockets / call the API
    CORS_ORIGINS = [o.strip() for o in os.environ.get(
        'CORS_ORIGINS', 'http://localhost:3000,http://127.0.0.1:3000'
    ).split(',') if o.strip()]
    SOCKETIO_NAMESPACE = os.environ.get('SOCKETIO_NAMESPACE', '/')
    # Room directory bounds
    ROOM_CODE_LENGTH = int(os.environ.get('ROOM_CODE_LENGTH', '4'))
    MAX_ROOMS = int(os.environ.get('MAX_ROOMS', '500'))
    MAX_PLAYERS_PER_ROOM = int(os.environ.get('MAX_PLAYERS_PER_ROOM', '50'))
    # Empty rooms are torn down after this many seconds
    ROOM_GRACE_SEC = float(os.environ.get('ROOM_GRACE_SEC', '300'))
    # Question countdown
    COUNTDOWN_START = int(os.environ.get('COUNTDOWN_START', '3'))
    COUNTDOWN_TICK_SEC = float(os.environ.get('COUNTDOWN_TICK_SEC', '1'))
    # "freeze" keeps the room until the host rejoins, "destroy" closes it
    HOST_LEAVE_POLICY = os.environ.get('HOST_LEAVE_POLICY', 'freeze')
    # "first_buzz" credits the first buzz of a round, "adjudicated" waits for the host
    WIN_CREDIT_POLICY = os.environ.get('WIN_CREDIT_POLICY', 'first_buzz')
    # "client" trusts offset-corrected client time, "server" uses receive time
    BUZZ_TIMESTAMP_POLICY = os.environ.get('BUZZ_TIMESTAMP_POLICY', 'client')
    # Advertised to clients; they resample their clock offset at this interval
    CLOCK_RESYNC_INTERVAL_SEC = int(os.environ.get('CLOCK_RESYNC_INTERVAL_SEC', '10'))
