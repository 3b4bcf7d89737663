"""Unit tests for selector hardening (pure string rewriting)."""

from __future__ import annotations

from replaylens.recorder.selectors import SelectorHardener, SelectorStrategy


class TestSelectorHardener:
    def setup_method(self):
        self.hardener = SelectorHardener()

    # ------------------------------------------------------------------ candidates

    def test_id_selector_prefers_test_id_then_id(self):
        assert self.hardener.harden("#submit") == '[data-testid="submit"], [id="submit"]'

    def test_class_selector_broadened_with_text_fallback(self):
        out = self.hardener.harden("button.btn-primary", {"textContent": "Sign in"})
        assert out == 'button[class*="btn-primary"], :text("Sign in")'

    def test_context_test_id_comes_first(self):
        out = self.hardener.harden("form > input.email", {"testId": "login-email"})
        assert out.split(", ")[0] == '[data-testid="login-email"]'
        assert 'form > input[class*="email"]' in out

    def test_classes_inside_attribute_values_untouched(self):
        found = self.hardener.candidates('a[href="/docs.html"]')
        assert found[SelectorStrategy.CSS] == 'a[href="/docs.html"]'

    def test_long_text_not_used(self):
        found = self.hardener.candidates("p.note", {"textContent": "x" * 150})
        assert SelectorStrategy.TEXT not in found

    def test_quotes_in_text_are_escaped(self):
        found = self.hardener.candidates("a.link", {"textContent": 'Say "hi"'})
        assert found[SelectorStrategy.TEXT] == ':text("Say \\"hi\\"")'

    # ------------------------------------------------------------------ pass-through

    def test_empty_selector_unchanged(self):
        assert self.hardener.harden("") == ""
        assert self.hardener.harden(None) is None

    def test_variable_selector_unchanged(self):
        assert self.hardener.harden("#{{FIELD}}") == "#{{FIELD}}"

    def test_hardening_is_idempotent(self):
        once = self.hardener.harden("button.go", {"textContent": "Go"})
        assert self.hardener.is_hardened(once)
        assert self.hardener.harden(once, {"textContent": "Go"}) == once
