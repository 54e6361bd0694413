from rich.pretty import pprint

from cmdtree import *

tool = root(synopsis="a tiny git-like example")
verbose = tool.bool("v", False, "print the parsed tree")

remote = tool.command("remote", "manage tracked repositories")
add = remote.command("add", "add a remote", details="Register a remote under a short name so it can be fetched from later.")
fetch = add.bool("f", False, "fetch the remote right after adding it")
track = add.string("t", "", "`branch` to track")
pair = add.args(2, "[name] [url]", "name is a short handle, url points at the repository")

log = tool.command("log", "show commit logs")
limit = log.int("n", 10, "limit the number of `commits`")
since = log.duration("since", usage="only show commits newer than this")
paths = log.args(usage="[path ...]")


if __name__ == '__main__':
    tool.parse()
    if verbose.value:
        pprint(tool)
    for command in (tool, remote, add, log):
        if command.parsed:
            pprint(command.flags)
    if add.parsed:
        pprint(list(pair))
    if log.parsed:
        pprint(list(paths))
