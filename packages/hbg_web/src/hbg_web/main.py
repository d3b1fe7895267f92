import uvicorn
from hbg_core.config import hbg_settings


def main() -> None:
    """Console entry point: serve the API with uvicorn."""
    uvicorn.run(
        "hbg_web.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level=hbg_settings.LOG_LEVEL.lower(),
        reload=hbg_settings.is_development(),
    )


if __name__ == "__main__":
    main()
