"""
WSGI entry point.

gunicorn:  gunicorn -c gunicorn.conf.py "tripgate.wsgi:create_wsgi_app()"
dev:       tripgate  (console script, runs the Flask development server)
"""
import argparse
import logging
import os

from .config_defaults import get_config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging():
    """Root handlers from LOG_LEVEL: always a stream handler, plus LOG_FILE when set."""
    level_name = (get_config('LOG_LEVEL', 'INFO') or 'INFO').upper()
    level = getattr(logging, level_name, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(stream_handler)

    logger = logging.getLogger(__name__)

    log_file_path = get_config('LOG_FILE')
    if log_file_path:
        try:
            file_handler = logging.FileHandler(log_file_path, mode='a')
            file_handler.setLevel(level)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            root_logger.addHandler(file_handler)
            logger.info(f"Logging initialized to {log_file_path} at level {level_name}")
        except OSError as e:
            logger.error(f"Failed to setup file logging: {e}")
    return logger


def create_wsgi_app():
    logger = configure_logging()

    from .app import create_app

    logger.info("Starting tripgate...")
    return create_app()


def main():
    parser = argparse.ArgumentParser(description="Run the tripgate development server")
    parser.add_argument('--host', default=os.environ.get('HOST', '127.0.0.1'))
    parser.add_argument('--port', type=int, default=int(os.environ.get('PORT', '5000')))
    parser.add_argument('--debug', action='store_true')
    args = parser.parse_args()

    app = create_wsgi_app()
    app.run(host=args.host, port=args.port, debug=args.debug)


if __name__ == '__main__':
    main()
