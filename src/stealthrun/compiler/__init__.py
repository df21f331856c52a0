"""Script compiler — turns automation script text into ``ActionStep`` lists.

Modules:

* ``script`` — ``ScriptCompiler`` / ``compile_script`` and ``CompileWarning``.
* ``render`` — ``render_script``, the inverse: steps back to script text.
"""

from stealthrun.compiler.render import render_script
from stealthrun.compiler.script import CompileWarning, ScriptCompiler, compile_script, load_script

__all__ = [
    "CompileWarning",
    "ScriptCompiler",
    "compile_script",
    "load_script",
    "render_script",
]
