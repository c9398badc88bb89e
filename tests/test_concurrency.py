from concurrent.futures import ThreadPoolExecutor

from reconciliation import IdentityResolver

WORKERS = 8


def _run_concurrently(database, requests):
    def call(args):
        return IdentityResolver(database).identify(*args)

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        return list(pool.map(call, requests))


def test_concurrent_novel_fact_creates_one_secondary(database, resolver, rows):
    primary = resolver.identify("doc@hillvalley.edu", "555-0123").primaryContactId

    views = _run_concurrently(database, [("doc@hillvalley.edu", "555-0456")] * WORKERS)

    assert len(rows()) == 2
    assert {v.primaryContactId for v in views} == {primary}
    assert {tuple(v.secondaryContactIds) for v in views} == {tuple(views[0].secondaryContactIds)}


def test_concurrent_merges_agree_on_one_primary(database, resolver, rows, assert_invariants):
    doc = resolver.identify("doc@hillvalley.edu", "555-0123").primaryContactId
    resolver.identify(None, "marty-phone")

    views = _run_concurrently(database, [("doc@hillvalley.edu", "marty-phone")] * WORKERS)

    assert {v.primaryContactId for v in views} == {doc}
    primaries = [r for r in rows().values() if r["linkPrecedence"] == "primary"]
    assert [p["id"] for p in primaries] == [doc]
    assert len(rows()) == 2
    assert_invariants()


def test_concurrent_new_identity_created_once(database, rows):
    views = _run_concurrently(database, [("biff@hillvalley.edu", "555-0000")] * WORKERS)

    assert len(rows()) == 1
    assert len({v.primaryContactId for v in views}) == 1
