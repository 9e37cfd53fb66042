import asyncio
from types import SimpleNamespace

import main
from core.folder_tree import FolderTree
from fake_backend import FakeBackend, make_articles, sample_tree


def test_print_tree_shows_backend_and_unread_totals(capsys):
    articles = make_articles(1, 2, start_id=1) + make_articles(3, 1, start_id=10, is_read=True)
    backend = FakeBackend(folders=sample_tree(), articles=articles)
    tree = FolderTree(backend)
    assert asyncio.run(tree.reload())

    main.print_tree(SimpleNamespace(backend=backend, tree=tree))
    lines = capsys.readouterr().out.splitlines()

    assert lines[0] == "In-memory: 2 unread"
    assert lines[1] == "Uncategorized"
    assert lines[2] == "     1  Alpha (2)"
    assert lines[4] == "     2  Beta"


def test_selection_for_list_arguments():
    args = main.parse_args(["list", "--folder", "2"])
    assert main.selection_for(args).folder_id == 2
    args = main.parse_args(["list"])
    assert main.selection_for(args).kind == "latest"
