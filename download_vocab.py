import logging
import os
import sys
import urllib.request

from settings import Settings
from tokenizer import ENCODER_FILENAME
from tokenizer import MERGES_FILENAME

BASE_URL = "https://openaipublic.blob.core.windows.net/gpt-2/encodings/main"

logger = logging.getLogger(__name__)


def download(vocab_dir):
    os.makedirs(vocab_dir, exist_ok=True)
    for filename in (ENCODER_FILENAME, MERGES_FILENAME):
        path = os.path.join(vocab_dir, filename)
        if os.path.exists(path):
            logger.info("%s already exists.", path)
            continue
        logger.info("Downloading %s...", filename)
        urllib.request.urlretrieve(f"{BASE_URL}/{filename}", path)
        logger.info("Download complete.")


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    download(sys.argv[1] if len(sys.argv) > 1 else str(Settings.from_env().vocab_dir))
