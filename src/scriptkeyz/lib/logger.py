import sys

# stdout belongs to the line protocol, so everything here goes to stderr

VERBOSE = False


def log(*args, ctx="--"):
    print(f"({ctx})", *args, file=sys.stderr, flush=True)


def debug(*args, ctx="DD"):
    if not VERBOSE:
        return
    if not args:
        print(file=sys.stderr, flush=True)
        return
    log(*args, ctx=ctx)


def info(*args, ctx="--"):
    log(*args, ctx=ctx)


def warn(*args, ctx="WW"):
    log(*args, ctx=ctx)


def error(*args, ctx="EE"):
    log(*args, ctx=ctx)


# levels accepted from scripts and embedded hosts
_LEVELS = {
    "debug": debug,
    "info": info,
    "warn": warn,
    "warning": warn,
    "error": error,
}


def log_at(level: str, *args, ctx=None):
    fn = _LEVELS.get(str(level).lower(), info)
    if ctx is None:
        fn(*args)
    else:
        fn(*args, ctx=ctx)
