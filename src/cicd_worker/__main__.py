"""Entry point for ``python -m cicd_worker``."""

from cicd_worker.main import run

if __name__ == "__main__":
    run()
