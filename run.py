# run.py
from bakery_pos.config import Config
from bakery_pos.main import app

if __name__ == "__main__":
    # Reloader would start a second notifier in the child process
    app.run(
        debug=Config.DEBUG,
        host=Config.FLASK_RUN_HOST,
        port=Config.FLASK_RUN_PORT,
        use_reloader=False,
    )
