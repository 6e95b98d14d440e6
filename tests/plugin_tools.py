"""Custom tools referenced by entrypoint from test manifests."""

from ragsmith.errors import OperationCancelled


def word_count(args, context):
    text = context.workspace.read_text(args["path"])
    return {"path": args["path"], "words": len(text.split())}


def touch(args, context):
    context.workspace.write_text(args["path"], "")


def explode(args, context):
    raise ValueError("kaboom")


def halt(args, context):
    raise OperationCancelled("stopped by user")


NOT_CALLABLE = 3
