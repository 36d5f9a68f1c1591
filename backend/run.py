from squares import create_app, socketio
from squares.services.pools.score_feed import resume_score_syncs

app = create_app()

if __name__ == '__main__':
    # Pick polling back up for linked games that were live at shutdown
    resume_score_syncs(app)
    # Use SocketIO server to enable websockets in dev
    socketio.run(app, debug=True)
