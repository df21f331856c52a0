"""Render compiled steps back into script text.

The output is a JavaScript Playwright task in the shape the compiler
recognises, so ``compile_script(render_script(steps))`` reproduces the
steps' types, params and error policies. Fallbacks, scroll direction and
quote characters inside values have no script idiom and are not rendered.
"""

from __future__ import annotations

from stealthrun.models.action import (
    ActionStep,
    ActionType,
    ClickParams,
    ExtractParams,
    NavigateParams,
    ScreenshotParams,
    ScrollParams,
    TypeParams,
    WaitParams,
)

_LABELS: dict[ActionType, str] = {
    ActionType.NAVIGATE: "open page",
    ActionType.CLICK: "click element",
    ActionType.TYPE: "type text",
    ActionType.WAIT: "wait",
    ActionType.EXTRACT: "extract data",
    ActionType.SCREENSHOT: "take screenshot",
    ActionType.SCROLL: "scroll page",
}


def _step_code(step: ActionStep) -> str:
    p = step.params
    if isinstance(p, NavigateParams):
        return f"await page.goto('{p.url}');"
    if isinstance(p, ClickParams):
        return f"await page.click('{p.selector}');"
    if isinstance(p, TypeParams):
        return f"await page.fill('{p.selector}', '{p.text}');"
    if isinstance(p, WaitParams):
        if p.mode == "time":
            return f"await page.waitForTimeout({p.duration_ms});"
        return f"await page.waitForSelector('{p.selector}');"
    if isinstance(p, ExtractParams):
        return f"const data = await page.$$eval('{p.selector}', els => els.map(el => el.textContent));"
    if isinstance(p, ScreenshotParams):
        return "await page.screenshot({ fullPage: true });" if p.full_page else "await page.screenshot({});"
    if isinstance(p, ScrollParams):
        target = "document.body.scrollHeight" if p.position == "end" else str(p.position)
        return f"await page.evaluate(() => window.scrollTo(0, {target}));"
    raise TypeError(f"No script idiom for {type(p).__name__}")


def render_script(steps: list[ActionStep]) -> str:
    """Render *steps* as a JavaScript Playwright task function."""
    out = ["async function runTask(page) {", "  try {"]
    for index, step in enumerate(steps, start=1):
        var = f"retries_step{index}"
        policy = step.error_policy
        on_exhausted = (
            "console.warn('skipping error:', stepError.message);"
            if policy.ignore_errors
            else "throw stepError;"
        )
        out += [
            f"    // Step {index}: {_LABELS[step.type]}",
            f"    let {var} = {policy.retry_count};",
            f"    while ({var} >= 0) {{",
            "      try {",
            f"        {_step_code(step)}",
            "        break;",
            "      } catch (stepError) {",
            f"        {var}--;",
            f"        if ({var} < 0) {{",
            f"          {on_exhausted}",
            "          break;",
            "        }",
            "        await new Promise((resolve) => setTimeout(resolve, 1000));",
            "      }",
            "    }",
            "",
        ]
    out += [
        "    return { success: true };",
        "  } catch (error) {",
        "    return { success: false, error: error.message };",
        "  }",
        "}",
    ]
    return "\n".join(out) + "\n"
