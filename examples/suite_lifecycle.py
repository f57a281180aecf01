"""Inherited hooks and parameterized runs.

Run with:
    classtest run examples/suite_lifecycle.py
"""

import asyncio

from classtest import (
    ParameterRun,
    TestOptions,
    after_all,
    after_each,
    before_all,
    before_each,
    parameterized_suite,
    suite_defaults,
    test,
    test_with_options,
)


@suite_defaults(diagnostic="shared connection lifecycle")
class ConnectionSuite:
    def __init__(self, context):
        self.log = [context.name]

    @before_all
    async def connect(self, context):
        await asyncio.sleep(0)
        self.log.append("connect")

    @before_each
    def begin(self, context):
        self.log.append(f"begin {context.name}")

    @after_each
    def rollback(self, context):
        self.log.append(f"rollback {context.name}")

    @after_all
    def disconnect(self, context):
        self.log.append("disconnect")
        context.diagnostic(f"{len(self.log)} lifecycle steps")


@parameterized_suite(
    properties=["region", "currency"],
    values=[
        ["eu", "EUR"],
        ParameterRun(["us", "USD"], TestOptions(diagnostic="slower sandbox", timeout=500)),
        ["uk", "GBP"],
    ],
)
class Checkout(ConnectionSuite):
    region = ""
    currency = ""

    @before_each
    def load_cart(self, context):
        self.cart = [("book", 12), ("pen", 3)]

    @test
    def totals_match(self, context):
        context.check(sum(price for _, price in self.cart) == 15, "cart total")

    @test(diagnostic="currency is set per run")
    def uses_region_currency(self, context):
        assert self.currency, f"no currency for {self.region}"

    @test_with_options(TestOptions(todo="refunds are not implemented", timeout=100))
    async def refunds(self, context):
        await asyncio.sleep(0.01)
        raise NotImplementedError("refunds")
