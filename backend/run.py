from dartfreak import create_app, socketio
from dartfreak.services.games.scheduler import start_expiry_sweeper

app = create_app()

if __name__ == '__main__':
    # Expire abandoned challenges even when no request touches them
    start_expiry_sweeper(app)
    # Use SocketIO server to enable websockets in dev
    socketio.run(app, debug=True)
