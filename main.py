#
#  VideoFlow: team video review and YouTube publishing API
#
"""
Main entry point for the Flask application.

Serves HTTP and the Socket.IO realtime channel from one process.
"""
from videoflow import create_app
from videoflow.services import get_services

app = create_app()

if __name__ == "__main__":
    with app.app_context():
        services = get_services()
    try:
        services.realtime.socketio.run(
            app,
            host=app.config["HOST"],
            port=app.config["PORT"],
            debug=app.config["DEBUG"],
        )
    finally:
        services.close()
