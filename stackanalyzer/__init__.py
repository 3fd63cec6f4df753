"""
Parses goroutine dumps and combines the goroutines with similar stacks.
"""
from .aggregate import Bucket, Similarity
from .dump_parser import Context, parse, parse_dump
from .frames import Call, Goroutine, ParseError, PointerBand, Signature

__version__ = "0.1.0"
