from flask import Blueprint, current_app, jsonify

from buzzer.errors import RoomNotFound

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the buzzer server!'})

@main.route('/api/rooms/<string:room_code>', methods=['GET'])
def get_room(room_code):
    """Lets a client check a code before opening a socket to join it."""
    registry = current_app.extensions['buzzer_registry']
    try:
        summary = registry.summary(room_code)
    except RoomNotFound as exc:
        return jsonify(exc.to_dict()), 404
    return jsonify(summary)

@main.route('/api/time', methods=['GET'])
def server_time():
    clock = current_app.extensions['buzzer_clock']
    return jsonify({'serverTime': clock.now()})
