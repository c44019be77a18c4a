from rich.pretty import pprint

from argtree import *

parser = Parser("tool", "manage remotes of a repository", shell=True, colorful=True)
verbose = parser.flag("v", "verbose", help="talk more")
remote = parser.command("remote", "manage remotes")
add = remote.command("add", "add a remote")
name = add.string("n", "name", required=True, help="name of the remote")
tags = add.list("t", "tag", help="label attached to the remote")
remove = remote.command("remove", "remove a remote")
target = remove.selector("", "target", ["origin", "upstream"], required=True)


if __name__ == '__main__':
    parser.run()
    pprint(parser)
    pprint({"verbose": verbose.value, "name": name.value, "tags": tags.value, "target": target.value})
