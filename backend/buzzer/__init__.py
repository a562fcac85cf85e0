import json

import click
from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
from config import Config

socketio = SocketIO(async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('CORS_ORIGINS') or '*'
    namespace = flask_app.config.get('SOCKETIO_NAMESPACE', '/')

    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # One registry per app instance; handlers reach it through current_app
    from buzzer.services.rooms import (
        ClockSyncService,
        RegistrySettings,
        RoomRegistry,
        SocketIOBroadcaster,
        SocketIOScheduler,
    )
    flask_app.extensions['buzzer_registry'] = RoomRegistry(
        broadcaster=SocketIOBroadcaster(socketio, namespace=namespace),
        scheduler=SocketIOScheduler(socketio),
        settings=RegistrySettings.from_config(flask_app.config),
    )
    flask_app.extensions['buzzer_clock'] = ClockSyncService()

    # Import and register blueprints here
    from buzzer.routes import main
    flask_app.register_blueprint(main)

    # Register Socket.IO event handlers
    # Importing here ensures the handlers bind to the initialized socketio instance
    from buzzer.socketio_events import register_socketio_handlers
    register_socketio_handlers(namespace=namespace)

    @click.command('protocol-schema')
    @click.option('--indent', default=2, show_default=True, help='JSON indentation.')
    def protocol_schema_command(indent):
        """Prints the JSON schema of the Socket.IO message protocol."""
        from buzzer.schemas import protocol_schema
        click.echo(json.dumps(protocol_schema(), indent=indent))

    flask_app.cli.add_command(protocol_schema_command)

    return flask_app
