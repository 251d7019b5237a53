"""
Petsim Effects Test Suite
=========================

Test Organization
-----------------
- tests/unit/          : Fast unit tests with a manual clock and mocked event bus
- tests/integration/   : End-to-end tests through a real ServiceContainer and EventBus

Use pytest markers to categorize and selectively run tests.
"""
