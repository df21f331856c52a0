"""Unit tests for the script compiler and renderer."""

from __future__ import annotations

from pathlib import Path

import pytest

from stealthrun.compiler import ScriptCompiler, compile_script, load_script, render_script
from stealthrun.models.action import (
    ActionStep,
    ActionType,
    ClickParams,
    ErrorPolicy,
    ExtractParams,
    NavigateParams,
    ScreenshotParams,
    ScrollParams,
    TypeParams,
    WaitParams,
)

LOGIN_SCRIPT = """\
async function runTask(page) {
  // Step 1: open login page
  let retries_step1 = 2;
  await page.goto('https://example.com/login');

  // Step 2: enter email
  await page.fill('#email', 'user@example.com');

  // Step 3: submit
  try {
    await page.click('button[type=submit]');
  } catch (e) {
    console.warn('skipping error:', e.message);
  }

  // Step 4: wait for dashboard
  await page.waitForSelector('.dashboard');
}
"""


class TestCompileBasics:
    """Step boundaries, idioms and parameter capture."""

    def test_two_step_scenario(self) -> None:
        """goto then click compile to a navigate and a click step."""
        steps = compile_script("// Step 1\nawait page.goto('https://a.com')\n// Step 2\nawait page.click('#btn')")
        assert len(steps) == 2
        assert steps[0].type == ActionType.NAVIGATE
        assert steps[0].params == NavigateParams(url="https://a.com")
        assert steps[1].type == ActionType.CLICK
        assert steps[1].params == ClickParams(selector="#btn")

    def test_ids_and_ordinals_are_sequential(self) -> None:
        steps = compile_script(LOGIN_SCRIPT)
        assert [s.id for s in steps] == ["step-1", "step-2", "step-3", "step-4"]
        assert [s.ordinal for s in steps] == [1, 2, 3, 4]

    @pytest.mark.parametrize("text", ["", "   ", "\n\n\t\n"])
    def test_empty_input_yields_no_steps(self, text: str) -> None:
        assert compile_script(text) == []

    def test_preamble_before_first_marker_is_discarded(self) -> None:
        """N markers produce exactly N steps; code before the first marker is dropped."""
        text = (
            "const browser = await chromium.launch();\n"
            "await page.goto('https://ignored.example');\n"
            "// Step 1\nawait page.goto('https://a.com')\n"
            "// Step 2\nawait page.click('#a')\n"
            "// Step 3\nawait page.click('#b')\n"
            "await browser.close();\n"
        )
        steps = compile_script(text)
        assert len(steps) == 3
        assert steps[0].params.url == "https://a.com"

    def test_last_block_flushed_without_closing_marker(self) -> None:
        steps = compile_script("// Step 1\nawait page.click('#only')")
        assert len(steps) == 1
        assert steps[0].params.selector == "#only"

    def test_last_match_wins_within_block(self) -> None:
        text = "// Step 1\nawait page.goto('https://a.com');\nawait page.click('#later');\n"
        steps = compile_script(text)
        assert steps[0].type == ActionType.CLICK
        assert steps[0].params == ClickParams(selector="#later")

    def test_compilation_is_deterministic(self) -> None:
        first = compile_script(LOGIN_SCRIPT)
        second = compile_script(LOGIN_SCRIPT)
        assert first == second
        assert [s.model_dump_json() for s in first] == [s.model_dump_json() for s in second]

    def test_login_script_types(self) -> None:
        steps = compile_script(LOGIN_SCRIPT)
        assert [s.type for s in steps] == [
            ActionType.NAVIGATE,
            ActionType.TYPE,
            ActionType.CLICK,
            ActionType.WAIT,
        ]
        assert steps[1].params == TypeParams(selector="#email", text="user@example.com")
        assert steps[3].params == WaitParams(mode="selector", selector=".dashboard")


class TestMarkers:
    """Accepted step-boundary spellings."""

    def test_python_comment_marker(self) -> None:
        steps = compile_script('# Step 1\npage.goto("https://py.example")\n')
        assert steps[0].params.url == "https://py.example"

    def test_arabic_marker(self) -> None:
        steps = compile_script("// خطوة 1: فتح الصفحة\nawait page.goto('https://ar.example');\n")
        assert len(steps) == 1
        assert steps[0].params.url == "https://ar.example"

    def test_marker_is_case_insensitive(self) -> None:
        assert len(compile_script("// STEP 1\nawait page.click('#a')")) == 1

    def test_word_containing_step_is_not_a_marker(self) -> None:
        steps = compile_script("// Step 1\nawait page.click('#a')\n// stepping stone\nawait page.click('#b')")
        assert len(steps) == 1
        assert steps[0].params.selector == "#b"

    @pytest.mark.parametrize(
        "comment",
        ["// Step back to the list", "# step through the results", "// خطوة أخيرة"],
    )
    def test_marker_requires_a_number(self, comment: str) -> None:
        steps = compile_script(f"// Step 1\nawait page.goto('https://a.example');\n{comment}\nawait page.click('#b')")
        assert len(steps) == 1
        assert steps[0].params == ClickParams(selector="#b")

    def test_marker_number_may_follow_without_space(self) -> None:
        assert len(compile_script("// Step1\nawait page.click('#a')\n// step2\nawait page.click('#b')")) == 2


class TestIdioms:
    """Per-idiom parameter extraction."""

    def test_wait_for_timeout(self) -> None:
        steps = compile_script("// Step 1\nawait page.waitForTimeout(2500);")
        assert steps[0].params == WaitParams(mode="time", duration_ms=2500)

    def test_python_wait_spellings(self) -> None:
        steps = compile_script(
            "# Step 1\npage.wait_for_timeout(750)\n# Step 2\npage.wait_for_selector('#ready')\n"
        )
        assert steps[0].params == WaitParams(mode="time", duration_ms=750)
        assert steps[1].params == WaitParams(mode="selector", selector="#ready")

    def test_extract(self) -> None:
        steps = compile_script("// Step 1\nconst rows = await page.$$eval('table tr', els => els.length);")
        assert steps[0].params == ExtractParams(selector="table tr")

    def test_screenshot_full_page(self) -> None:
        steps = compile_script(
            "// Step 1\nawait page.screenshot({ path: 'a.png', fullPage: true });\n"
            "// Step 2\nawait page.screenshot({ path: 'b.png' });\n"
        )
        assert steps[0].params == ScreenshotParams(full_page=True)
        assert steps[1].params == ScreenshotParams(full_page=False)

    def test_scroll_to_pixel_position(self) -> None:
        steps = compile_script("// Step 1\nawait page.evaluate(() => window.scrollTo(0, 800));")
        assert steps[0].params == ScrollParams(position=800)

    def test_scroll_to_bottom(self) -> None:
        steps = compile_script(
            "// Step 1\nawait page.evaluate(() => window.scrollTo(0, document.body.scrollHeight));"
        )
        assert steps[0].params == ScrollParams(position="end")

    def test_missing_captures_default_to_empty(self) -> None:
        """Non-literal arguments compile to empty/zero params instead of failing."""
        steps = compile_script(
            "// Step 1\nawait page.goto(targetUrl);\n"
            "// Step 2\nawait page.waitForTimeout(delay);\n"
            "// Step 3\nawait page.fill(selector, value);\n"
        )
        assert steps[0].params == NavigateParams(url="")
        assert steps[1].params == WaitParams(mode="time", duration_ms=0)
        assert steps[2].params == TypeParams(selector="", text="")


class TestErrorPolicyIdioms:
    """Retry-count assignment and ignore-and-continue logging."""

    def test_retry_assignment_sets_retry_count(self) -> None:
        steps = compile_script(LOGIN_SCRIPT)
        assert steps[0].error_policy.retry_count == 2

    def test_default_retry_count(self) -> None:
        steps = compile_script(LOGIN_SCRIPT)
        assert steps[1].error_policy.retry_count == 3
        steps = compile_script(LOGIN_SCRIPT, default_retry_count=0)
        assert steps[1].error_policy.retry_count == 0

    def test_skip_warning_sets_ignore_errors(self) -> None:
        steps = compile_script(LOGIN_SCRIPT)
        assert steps[2].error_policy.ignore_errors is True
        assert steps[1].error_policy.ignore_errors is False

    def test_plain_warning_does_not_ignore(self) -> None:
        steps = compile_script("// Step 1\nawait page.click('#a');\nconsole.warn('page is slow');")
        assert steps[0].error_policy.ignore_errors is False

    def test_arabic_skip_warning(self) -> None:
        steps = compile_script("// Step 1\nawait page.click('#a');\nconsole.warn('تخطي الخطأ', e);")
        assert steps[0].error_policy.ignore_errors is True

    def test_negative_default_rejected(self) -> None:
        with pytest.raises(ValueError):
            ScriptCompiler(default_retry_count=-1)


class TestWarnings:
    """Non-fatal compile warnings."""

    def test_unrecognized_page_call_warns(self) -> None:
        compiler = ScriptCompiler()
        steps = compiler.compile("// Step 1\nawait page.click('#a');\nawait page.hover('#menu');")
        assert steps[0].params == ClickParams(selector="#a")
        assert len(compiler.warnings) == 1
        assert compiler.warnings[0].line_number == 3
        assert "hover" in compiler.warnings[0].line

    def test_empty_block_warns_and_defaults_to_navigate(self) -> None:
        compiler = ScriptCompiler()
        steps = compiler.compile("// Step 1\nconst x = 1;\n// Step 2\nawait page.click('#a')")
        assert steps[0].params == NavigateParams(url="")
        assert any("no recognized action" in w.message for w in compiler.warnings)

    def test_warnings_reset_between_runs(self) -> None:
        compiler = ScriptCompiler()
        compiler.compile("// Step 1\nawait page.hover('#a')")
        assert compiler.warnings
        compiler.compile("// Step 1\nawait page.click('#a')")
        assert compiler.warnings == []


class TestRender:
    """render_script produces text the compiler reads back."""

    def test_render_then_compile_reproduces_steps(self) -> None:
        steps = [
            ActionStep(id="step-1", ordinal=1, params=NavigateParams(url="https://a.com"), error_policy=ErrorPolicy(retry_count=1)),
            ActionStep(id="step-2", ordinal=2, params=TypeParams(selector="#q", text="shoes")),
            ActionStep(id="step-3", ordinal=3, params=WaitParams(mode="time", duration_ms=1200)),
            ActionStep(id="step-4", ordinal=4, params=ScrollParams(position="end")),
            ActionStep(
                id="step-5",
                ordinal=5,
                params=ScreenshotParams(full_page=True),
                error_policy=ErrorPolicy(ignore_errors=True, retry_count=0),
            ),
        ]
        compiler = ScriptCompiler()
        recompiled = compiler.compile(render_script(steps))
        assert compiler.warnings == []
        assert [(s.params, s.error_policy) for s in recompiled] == [(s.params, s.error_policy) for s in steps]

    def test_render_empty(self) -> None:
        assert compile_script(render_script([])) == []


def test_load_script_reads_utf8(tmp_path: Path) -> None:
    path = tmp_path / "task.js"
    path.write_text("// خطوة 1\nawait page.goto('https://a.com')\n", encoding="utf-8")
    assert "خطوة" in load_script(path)
