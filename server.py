# Deploy: set secrets and run 'uvicorn server:app --host=0.0.0.0 --port=8000'
from dotenv import load_dotenv

from presence_board.api import create_app
from presence_board.config import load_settings
from presence_board.logging_setup import configure_logging

load_dotenv()

settings = load_settings()
configure_logging(settings.log_level)

app = create_app(settings)

__all__ = ["app"]
