from clawproxy.logging_config import setup_logging
from clawproxy.routes import create_app
from clawproxy.settings import settings


# Configure logging once for the whole process.
setup_logging()

# FastAPI application instance for uvicorn.
app = create_app()


def run() -> None:
    import uvicorn

    # Use our own logging configuration configured in clawproxy.logging_config.
    uvicorn.run("main:app", host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
