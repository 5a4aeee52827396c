# backend/wsgi.py
from printdesk import create_app
from printdesk.services.maintenance_service import RetentionSweeper

app = create_app()

if app.config["FILE_SWEEP_ENABLED"]:
    sweeper = RetentionSweeper(app)
    sweeper.start()

if __name__ == "__main__":
    app.run()
