"""
Best effort guessing of the GOROOT, GOPATH and go module root a dump was
generated with, mapped onto the local file system.

This only matters for display: it lets a Call point at the local copy of its
source file. Nothing here is needed to parse or aggregate a dump, and nothing
here raises when a file can't be found.
"""
import logging
import os
import posixpath
import re

logger = logging.getLogger(__name__)

DEFAULT_GOROOT = "/usr/local/go"

re_module = re.compile(r"^module\s+([^\n\r]+)\r?$", re.MULTILINE)


class Roots(object):
    """Roots detected in the dump and the local paths they map to"""

    def __init__(self, local_goroot="", goroot="", gopaths=None, gomod_root="",
                 gomod_import_path="", missing=0):
        self.local_goroot = local_goroot
        # GOROOT as seen in the dump, not the one of this host.
        self.goroot = goroot
        # GOPATH prefix in the dump -> local GOPATH.
        self.gopaths = gopaths if gopaths is not None else {}
        self.gomod_root = gomod_root
        self.gomod_import_path = gomod_import_path
        self.missing = missing

    def __repr__(self):
        return "Roots(goroot=%r, gopaths=%r, gomod_root=%r)" % (self.goroot, self.gopaths,
                                                                 self.gomod_root)


def _to_slash(p):
    return p.replace("\\", "/").rstrip("/")


def get_local_goroot():
    return _to_slash(os.environ.get("GOROOT") or DEFAULT_GOROOT)


def get_gopaths():
    """Returns the local GOPATH entries, defaulting to ~/go"""
    out = [_to_slash(p) for p in os.environ.get("GOPATH", "").split(os.pathsep) if p]
    if not out:
        out = [_to_slash(os.path.join(os.path.expanduser("~"), "go"))]
    return out


def split_path(p):
    """
    Splits a "/" separated path in its components, keeping the leading "/" on
    the first one.
    """
    if not p:
        return []
    parts = [x for x in p.split("/") if x]
    if p.startswith("/") and parts:
        parts[0] = "/" + parts[0]
    return parts


def path_join(*parts):
    return posixpath.join(*parts) if parts else ""


def is_file(p):
    return os.path.isfile(p)


def rooted_in(root, parts):
    """
    Returns the prefix of parts under which the remaining components exist as a
    file in root, or "" when none does.
    """
    for i in range(1, len(parts)):
        suffix = path_join(*parts[i:])
        if is_file(path_join(root, suffix)):
            return path_join(*parts[:i])
    return ""


def is_go_module(parts):
    """
    Looks upward for a directory holding a go.mod/go.sum pair.

    Returns the directory and the import path declared in go.mod.
    """
    for i in range(len(parts), 0, -1):
        prefix = path_join(*parts[:i])
        if not is_file(path_join(prefix, "go.sum")):
            continue
        try:
            with open(path_join(prefix, "go.mod"), "rb") as gfh:
                contents = gfh.read().decode("utf-8", "replace")
        except OSError:
            continue
        match = re_module.search(contents)
        if match:
            return prefix, match.group(1)
    return "", ""


def has_src_prefix(p, gopaths):
    for prefix in gopaths:
        if p.startswith(prefix + "/src/") or p.startswith(prefix + "/pkg/mod/"):
            return True
    return False


def guess_roots(files, local_goroot=None, local_gopaths=None):
    """
    Guesses the roots used by the source paths in files.

    This does disk I/O to check for file presence.
    """
    if local_goroot is None:
        local_goroot = get_local_goroot()
    if local_gopaths is None:
        local_gopaths = get_gopaths()

    roots = Roots(local_goroot=local_goroot)
    for f in sorted(files):
        if roots.goroot and f.startswith(roots.goroot + "/src/"):
            continue
        if has_src_prefix(f, roots.gopaths):
            continue

        parts = split_path(f)
        if not roots.goroot:
            r = rooted_in(local_goroot + "/src", parts)
            if r:
                roots.goroot = r[:-4]
                logger.debug("found GOROOT=%s", roots.goroot)
                continue

        found = False
        for local in local_gopaths:
            r = rooted_in(local + "/src", parts)
            if r:
                roots.gopaths[r[:-4]] = local
                found = True
                break
            r = rooted_in(local + "/pkg/mod", parts)
            if r:
                roots.gopaths[r[:-8]] = local
                found = True
                break

        if not found:
            # Probably a go module.
            if not roots.gomod_root and len(parts) > 1:
                roots.gomod_root, roots.gomod_import_path = is_go_module(parts[:-1])
            if roots.gomod_root and f.startswith(roots.gomod_root + "/"):
                continue
            logger.debug("failed to find locally: %s", f)
            roots.missing += 1
    return roots


def update_locations(call, roots):
    """Sets local_src_path, rel_src_path and is_stdlib on a call"""
    if not call.src_path:
        return
    # GOROOT first, GOPATH is often a subdirectory of it.
    if roots.goroot and call.src_path.startswith(roots.goroot + "/src/"):
        call.rel_src_path = call.src_path[len(roots.goroot) + 5:]
        call.local_src_path = path_join(roots.local_goroot, "src", call.rel_src_path)
        call.is_stdlib = True
        return
    for prefix, dest in roots.gopaths.items():
        if call.src_path.startswith(prefix + "/src/"):
            call.rel_src_path = call.src_path[len(prefix) + 5:]
            call.local_src_path = path_join(dest, "src", call.rel_src_path)
            return
        if call.src_path.startswith(prefix + "/pkg/mod/"):
            call.rel_src_path = call.src_path[len(prefix) + 9:]
            call.local_src_path = path_join(dest, "pkg/mod", call.rel_src_path)
            return
    if roots.gomod_root and call.src_path.startswith(roots.gomod_root + "/"):
        call.rel_src_path = roots.gomod_import_path + "/" + call.src_path[len(roots.gomod_root) + 1:]
        call.local_src_path = call.src_path
