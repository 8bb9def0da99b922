#!/usr/bin/env python3
"""CC LIVE - live index of Claude Code session transcripts"""
import uvicorn

from cclive.config import Settings, configure_logging


def main():
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    print(f"\n  CC LIVE - Claude Code live session index")
    print(f"  Watching {settings.get_projects_dir()}")
    print(f"  Running at http://{settings.host}:{settings.port}\n")

    uvicorn.run(
        "cclive.api:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
