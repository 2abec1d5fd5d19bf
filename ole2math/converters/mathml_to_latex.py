"""
MathML to LaTeX transcoder.

A small structural transcoder over ElementTree: presentation MathML elements
map to their LaTeX constructs, token text goes through a Unicode symbol table.
Namespaced (``mml:math``) and plain (``math``) markup are both accepted.

    >>> mathml_to_latex("<math><msup><mi>x</mi><mn>2</mn></msup></math>")
    'x^{2}'
"""

import logging
import typing
from xml.etree import ElementTree as ET

from ole2math.exceptions import LatexTranscodeError

logger = logging.getLogger(__name__)


class MathMLTranscoder(typing.Protocol):
    def __call__(self, markup: str) -> str:
        """Return LaTeX for a math markup string.

        Raises:
            LatexTranscodeError: The markup cannot be transcoded.
        """
        ...


SYMBOL_TO_LATEX = {
    "∫": r"\int",
    "∬": r"\iint",
    "∭": r"\iiint",
    "∮": r"\oint",
    "∑": r"\sum",
    "∏": r"\prod",
    "∐": r"\coprod",
    "∪": r"\cup",
    "∩": r"\cap",
    "−": "-",
    "±": r"\pm",
    "∓": r"\mp",
    "×": r"\times",
    "÷": r"\div",
    "·": r"\cdot",
    "⋅": r"\cdot",
    "≤": r"\leq",
    "≥": r"\geq",
    "≠": r"\neq",
    "≈": r"\approx",
    "≡": r"\equiv",
    "∝": r"\propto",
    "∞": r"\infty",
    "∂": r"\partial",
    "∇": r"\nabla",
    "∀": r"\forall",
    "∃": r"\exists",
    "∈": r"\in",
    "∉": r"\notin",
    "⊂": r"\subset",
    "⊃": r"\supset",
    "⊆": r"\subseteq",
    "⊇": r"\supseteq",
    "∅": r"\emptyset",
    "°": r"^\circ",
    "←": r"\leftarrow",
    "→": r"\rightarrow",
    "↔": r"\leftrightarrow",
    "⇐": r"\Leftarrow",
    "⇒": r"\Rightarrow",
    "⇔": r"\Leftrightarrow",
    "…": r"\ldots",
    "⋯": r"\cdots",
    "⋮": r"\vdots",
    "⋱": r"\ddots",
    "α": r"\alpha",
    "β": r"\beta",
    "γ": r"\gamma",
    "δ": r"\delta",
    "ε": r"\varepsilon",
    "ζ": r"\zeta",
    "η": r"\eta",
    "θ": r"\theta",
    "ι": r"\iota",
    "κ": r"\kappa",
    "λ": r"\lambda",
    "μ": r"\mu",
    "ν": r"\nu",
    "ξ": r"\xi",
    "π": r"\pi",
    "ρ": r"\rho",
    "σ": r"\sigma",
    "τ": r"\tau",
    "υ": r"\upsilon",
    "φ": r"\varphi",
    "χ": r"\chi",
    "ψ": r"\psi",
    "ω": r"\omega",
    "Γ": r"\Gamma",
    "Δ": r"\Delta",
    "Θ": r"\Theta",
    "Λ": r"\Lambda",
    "Ξ": r"\Xi",
    "Π": r"\Pi",
    "Σ": r"\Sigma",
    "Φ": r"\Phi",
    "Ψ": r"\Psi",
    "Ω": r"\Omega",
}

# Characters that must be escaped inside math mode
LATEX_SPECIAL = {"%": r"\%", "&": r"\&", "#": r"\#", "_": r"\_", "$": r"\$"}

FUNCTION_NAMES = {
    "sin", "cos", "tan", "cot", "sec", "csc",
    "sinh", "cosh", "tanh", "ln", "log", "exp",
    "lim", "max", "min", "sup", "inf", "det", "gcd",
}  # fmt: skip

FENCES = {
    "{": r"\{",
    "}": r"\}",
    "⟨": r"\langle",
    "⟩": r"\rangle",
    "‖": r"\|",
    "⌊": r"\lfloor",
    "⌋": r"\rfloor",
    "⌈": r"\lceil",
    "⌉": r"\rceil",
}

ACCENTS = {
    "^": r"\hat",
    "ˆ": r"\hat",
    "~": r"\tilde",
    "˜": r"\tilde",
    "¯": r"\bar",
    "‾": r"\overline",
    "→": r"\vec",
    "⃗": r"\vec",
    "˙": r"\dot",
    "¨": r"\ddot",
}


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1].rsplit(":", 1)[-1]


def _symbols(text: str) -> str:
    parts = []
    for ch in text:
        if ch in SYMBOL_TO_LATEX:
            parts.append(SYMBOL_TO_LATEX[ch] + " ")
        elif ch in LATEX_SPECIAL:
            parts.append(LATEX_SPECIAL[ch])
        else:
            parts.append(ch)
    return "".join(parts)


def _group(latex: str) -> str:
    return "{" + latex + "}"


def _script_base(latex: str) -> str:
    # single tokens need no braces: x^{2} rather than {x}^{2}
    latex = latex.strip()
    if len(latex) == 1 or (latex.startswith("\\") and latex[1:].isalpha()):
        return latex
    return _group(latex)


class _Transcoder:
    def node(self, elem: ET.Element) -> str:
        tag = _local(elem.tag)
        handler = getattr(self, f"tag_{tag}", None)
        if handler is not None:
            return handler(elem)
        return self.children(elem)

    def children(self, elem: ET.Element) -> str:
        return "".join(self.node(child) for child in elem)

    def args(self, elem: ET.Element) -> list[str]:
        return [self.node(child) for child in elem]

    def text(self, elem: ET.Element) -> str:
        return (elem.text or "").strip()

    # Token elements

    def tag_mi(self, elem: ET.Element) -> str:
        text = self.text(elem)
        if text in FUNCTION_NAMES:
            return "\\" + text + " "
        if len(text) > 1 and text.isalpha():
            return r"\mathrm{" + text + "}"
        return _symbols(text)

    def tag_mn(self, elem: ET.Element) -> str:
        return self.text(elem)

    def tag_mo(self, elem: ET.Element) -> str:
        text = self.text(elem)
        if text in FENCES:
            return FENCES[text]
        if text in FUNCTION_NAMES:
            return "\\" + text + " "
        return _symbols(text)

    def tag_mtext(self, elem: ET.Element) -> str:
        text = elem.text or ""
        if not text.strip():
            return r"\ "
        return r"\text{" + "".join(LATEX_SPECIAL.get(ch, ch) for ch in text) + "}"

    def tag_mspace(self, elem: ET.Element) -> str:
        return r"\,"

    # Layout

    def tag_semantics(self, elem: ET.Element) -> str:
        # first child is the presentation form, the rest are annotations
        for child in elem:
            return self.node(child)
        return ""

    def tag_annotation(self, elem: ET.Element) -> str:
        return ""

    def tag_mfrac(self, elem: ET.Element) -> str:
        args = self.args(elem)
        if len(args) < 2:
            raise LatexTranscodeError("mfrac needs two children")
        return r"\frac" + _group(args[0]) + _group(args[1])

    def tag_msqrt(self, elem: ET.Element) -> str:
        return r"\sqrt" + _group(self.children(elem))

    def tag_mroot(self, elem: ET.Element) -> str:
        args = self.args(elem)
        if len(args) < 2:
            raise LatexTranscodeError("mroot needs two children")
        return r"\sqrt[" + args[1] + "]" + _group(args[0])

    def tag_msup(self, elem: ET.Element) -> str:
        args = self.args(elem)
        if len(args) < 2:
            raise LatexTranscodeError("msup needs two children")
        return _script_base(args[0]) + "^" + _group(args[1])

    def tag_msub(self, elem: ET.Element) -> str:
        args = self.args(elem)
        if len(args) < 2:
            raise LatexTranscodeError("msub needs two children")
        return _script_base(args[0]) + "_" + _group(args[1])

    def tag_msubsup(self, elem: ET.Element) -> str:
        args = self.args(elem)
        if len(args) < 3:
            raise LatexTranscodeError("msubsup needs three children")
        return _script_base(args[0]) + "_" + _group(args[1]) + "^" + _group(args[2])

    def tag_munder(self, elem: ET.Element) -> str:
        args = self.args(elem)
        if len(args) < 2:
            raise LatexTranscodeError("munder needs two children")
        if args[0].startswith(("\\sum", "\\prod", "\\lim", "\\int")):
            return args[0] + "_" + _group(args[1])
        return r"\underset" + _group(args[1]) + _group(args[0])

    def tag_mover(self, elem: ET.Element) -> str:
        children = list(elem)
        if len(children) < 2:
            raise LatexTranscodeError("mover needs two children")
        accent = self.text(children[1]) if _local(children[1].tag) == "mo" else ""
        if accent in ACCENTS:
            return ACCENTS[accent] + _group(self.node(children[0]))
        base, over = self.node(children[0]), self.node(children[1])
        if base.startswith(("\\sum", "\\prod", "\\int")):
            return base + "^" + _group(over)
        return r"\overset" + _group(over) + _group(base)

    def tag_munderover(self, elem: ET.Element) -> str:
        args = self.args(elem)
        if len(args) < 3:
            raise LatexTranscodeError("munderover needs three children")
        return args[0] + "_" + _group(args[1]) + "^" + _group(args[2])

    def tag_mfenced(self, elem: ET.Element) -> str:
        opening = elem.get("open", "(")
        closing = elem.get("close", ")")
        separator = elem.get("separators", ",")[:1] or ","
        inner = separator.join(self.args(elem))
        return (
            r"\left" + FENCES.get(opening, opening or ".")
            + " " + inner + " "
            + r"\right" + FENCES.get(closing, closing or ".")
        )  # fmt: skip

    def tag_mtable(self, elem: ET.Element) -> str:
        rows = []
        for row in elem:
            if _local(row.tag) not in ("mtr", "mlabeledtr"):
                continue
            rows.append(" & ".join(self.node(cell) for cell in row))
        return r"\begin{matrix} " + r" \\ ".join(rows) + r" \end{matrix}"


def mathml_to_latex(markup: str) -> str:
    """
    Transcode a MathML string to LaTeX.

    Raises:
        LatexTranscodeError: If the markup is not XML, is nested beyond the
            interpreter's recursion limit or yields no LaTeX.
    """
    try:
        root = ET.fromstring(markup.strip())
    except ET.ParseError as exc:
        raise LatexTranscodeError(f"Math markup is not valid XML: {exc}", cause=exc) from exc

    try:
        latex = " ".join(_Transcoder().node(root).split())
    except RecursionError as exc:
        raise LatexTranscodeError("Math markup is nested too deeply", cause=exc) from exc
    if not latex:
        logger.debug(f"Empty transcode for markup: {markup[:200]!r}")
        raise LatexTranscodeError("Math markup produced empty LaTeX")
    return latex
