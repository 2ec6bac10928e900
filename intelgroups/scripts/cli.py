"""
A simple CLI for running the server.
"""

import sys

import uvicorn


def main():
    try:
        run = sys.argv[1] == "run"
    except IndexError:
        run = False

    if not run:
        print("Only supported command is intelgroups run")
        exit(1)

    from intelgroups.config.settings import Settings

    settings = Settings()

    uvicorn.run("intelgroups.api.app:app", host=settings.hostname, port=settings.port)
