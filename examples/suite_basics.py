"""A plain suite with skips, plans and a focused test.

Run with:
    classtest run examples/suite_basics.py
    classtest run examples/suite_basics.py --only
"""

from classtest import TestOptions, skip, suite, test, test_only, test_skip, test_with_options


@suite(timeout=1000)
class Strings:
    @test
    def upper(self, context):
        assert "abc".upper() == "ABC"

    @test_with_options(TestOptions(plan=2))
    def split(self, context):
        head, tail = "a,b".split(",")
        context.check(head == "a")
        context.check(tail == "b")

    @test_skip
    def unicode_folding(self, context):
        assert "ß".casefold() == "ss"

    @test
    def needs_network(self, context):
        skip("offline")

    @test_only
    def focused(self, context):
        context.diagnostic("runs with --only")
