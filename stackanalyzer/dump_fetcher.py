"""Retrieves goroutine dumps from a live process

See net/http/pprof: /debug/pprof/goroutine?debug=2 prints the same format as a
panic.
"""
import logging

import requests

logger = logging.getLogger(__name__)

GOROUTINE_DUMP_PATH = "/debug/pprof/goroutine"


def get_goroutine_dump_url(url):
    if "?" in url:
        raise ValueError("Wrong URL since it already contains a parameter: %s " % url)

    if not url.endswith(GOROUTINE_DUMP_PATH):
        url = url.rstrip("/") + GOROUTINE_DUMP_PATH
    return url + "?debug=2"


def retrieve_dump(url, timeout=60):
    """Returns the text of the dump, raises requests.HTTPError on failure"""
    logger.info("Retrieving: %s", url)

    r = requests.get(url, timeout=timeout)
    r.raise_for_status()
    return r.text


def retrieve_file(url, file, timeout=60):
    logger.info("Retrieving: %s", url)

    r = requests.get(url, timeout=timeout)
    r.raise_for_status()
    with open(file, "wb") as lfh:
        lfh.write(r.content)
