from dotenv import load_dotenv
from loguru import logger

from booking_proxy.api.server import run_server

load_dotenv()


if __name__ == "__main__":
    logger.info("Starting booking proxy")
    run_server()
