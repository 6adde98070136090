import sys
import signal
import os
from lorekeeper import create_app, socketio
from dotenv import load_dotenv

shutting_down = False

def shutdown_handler(signum, frame):
    global shutting_down
    if shutting_down:
        print("\nForcing immediate shutdown...")
        os._exit(1)
    else:
        shutting_down = True
        print("\nShutting down Lorekeeper... (Press CTRL+C again to force)")
        sys.exit(0)

if __name__ == "__main__":
    print("Lorekeeper starting...")
    load_dotenv(override=True)
    cli = sys.modules['flask.cli']
    cli.show_server_banner = lambda *x: None

    signal.signal(signal.SIGINT, shutdown_handler)
    signal.signal(signal.SIGTERM, shutdown_handler)

    app = create_app()
    print("Lorekeeper started.")

    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", 5000))
    print(f"Application is running on: http://{host}:{port}")
    socketio.run(app, host=host, port=port, allow_unsafe_werkzeug=True)
