#!/usr/bin/env python3
"""
Combines the goroutines of a Go stack dump that have similar stacks.

Reads the dumps given on the command line, stdin, or a live process with --url,
or serves the web upload form with --addr.
"""
import argparse
import io
import logging
import os
import sys

sys.path.append(os.path.join(os.path.dirname(os.path.abspath(os.path.realpath(__file__))), "www"))

import stackanalyzer.aggregate
import stackanalyzer.analyzer_config
import stackanalyzer.bucketinfo
import stackanalyzer.dump_fetcher
import stackanalyzer.dump_parser
import stackanalyzer.hash_combiner

PORT_ENV_VAR = "PORT"


def parse_addr(addr):
    """Splits "host:port"; an empty host listens on all interfaces"""
    host, sep, port = addr.rpartition(":")
    if not sep:
        raise ValueError("Address must be host:port, got '%s'" % addr)
    try:
        port = int(port)
    except ValueError:
        raise ValueError("Invalid port in address '%s'" % addr)
    return host or "0.0.0.0", port


def combine(stream, args, out):
    """
    Parses one dump and writes the combined stacks to out.

    Returns False if the dump could not be parsed completely.
    """
    if args.hacky:
        text = stream.read()
        if isinstance(text, bytes):
            text = text.decode('utf-8', 'replace')
        try:
            routines = stackanalyzer.hash_combiner.parse(text.splitlines())
        except ValueError as err:
            print("Error: %s" % err, file=sys.stderr)
            return False
        stackanalyzer.hash_combiner.write_aggregated(out, routines)
        return True

    context, err = stackanalyzer.dump_parser.parse_dump(
        stream, sys.stderr, guess_paths=args.guess_paths)
    goroutines = context.goroutines if context is not None else []
    buckets = stackanalyzer.aggregate.aggregate(goroutines, args.similarity)

    if args.json:
        out.write(stackanalyzer.bucketinfo.to_json(buckets) + "\n")
    else:
        stackanalyzer.bucketinfo.write_aggregated(out, buckets)

    if err is not None:
        print("Error: %s" % err, file=sys.stderr)
        return False
    return True


def main():
    parser = argparse.ArgumentParser(description='Combine similar goroutines of Go stack dumps.')

    parser.add_argument("files", type=str, nargs='*', help="the dump file(s) to read; stdin if none")
    parser.add_argument("--url", type=str,
                        help="base URL of a process serving net/http/pprof to read a dump from")
    parser.add_argument("--similarity", type=stackanalyzer.aggregate.Similarity.from_name,
                        default=None,
                        help="one of: " + ", ".join(
                            s.value for s in stackanalyzer.aggregate.Similarity))
    parser.add_argument("--hacky", action="store_true",
                        help="use the hash based combiner, which ignores the dump layout")
    parser.add_argument("--json", action="store_true", help="write the buckets as JSON")
    parser.add_argument("--guess-paths", action="store_true",
                        help="look up GOROOT/GOPATH locally to resolve source files")
    parser.add_argument("--addr", type=str, default="",
                        help="if set, address for HTTP requests instead of reading dumps")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    if args.similarity is None:
        args.similarity = stackanalyzer.aggregate.Similarity.from_name(
            stackanalyzer.analyzer_config.similarity())

    if not args.addr and os.getenv(PORT_ENV_VAR):
        args.addr = ":" + os.getenv(PORT_ENV_VAR)
    if args.addr:
        import runserver
        host, port = parse_addr(args.addr)
        runserver.serve(host, port)
        return 0

    ok = True
    if args.url:
        url = stackanalyzer.dump_fetcher.get_goroutine_dump_url(args.url)
        text = stackanalyzer.dump_fetcher.retrieve_dump(url)
        ok = combine(io.StringIO(text), args, sys.stdout) and ok
    elif not args.files:
        ok = combine(sys.stdin.buffer, args, sys.stdout)

    for file in args.files:
        with open(file, "rb") as lfh:
            ok = combine(lfh, args, sys.stdout) and ok

    return 0 if ok else 1


if __name__ == '__main__':
    sys.exit(main())
