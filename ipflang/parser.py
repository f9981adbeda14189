"""IPFLang parser.

A recursive descent parser from source text to a ``Script``. After a clean
syntactic parse the script is handed to ``check_script`` so that name and
type errors are reported before anything is evaluated.

Syntax errors do not stop the parse: the parser skips to the next top-level
declaration and carries on, so every problem in a file surfaces at once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation

from .check import Diagnostic, DiagnosticKind, Severity, check_script
from .errors import ParseError
from .expressions import (
    BUILTIN_FUNCTIONS,
    Binary,
    BoolLit,
    Call,
    DateLit,
    Expr,
    NumberLit,
    Ref,
    SymbolLit,
    Unary,
)
from .inputs import (
    AmountInput,
    BooleanInput,
    DateInput,
    Input,
    InputKind,
    ListInput,
    ListItem,
    MultiListInput,
    NumberInput,
)
from .lexer import Token, TokenType, tokenize
from .script import (
    Case,
    Direction,
    Fee,
    Group,
    LetVar,
    Return,
    Script,
    Verify,
    VerifyComplete,
    VerifyMonotonic,
    Version,
)

logger = logging.getLogger(__name__)

TOP_LEVEL = frozenset({"VERSION", "GROUP", "INPUT", "FEE", "RETURN", "VERIFY"})

_COMPARISON_SYMBOLS = {
    "=": "=",
    "==": "=",
    "!=": "!=",
    "<>": "!=",
    "<": "<",
    "<=": "<=",
    ">": ">",
    ">=": ">=",
}


@dataclass(frozen=True)
class ParseResult:
    script: Script | None
    diagnostics: tuple[Diagnostic, ...]

    @property
    def errors(self) -> tuple[Diagnostic, ...]:
        return tuple(d for d in self.diagnostics if d.severity == Severity.ERROR)

    @property
    def warnings(self) -> tuple[Diagnostic, ...]:
        return tuple(d for d in self.diagnostics if d.severity == Severity.WARNING)

    @property
    def is_valid(self) -> bool:
        return self.script is not None and not self.errors


class _SyntaxAbort(Exception):
    def __init__(self, message: str, token: Token):
        super().__init__(message)
        self.message = message
        self.token = token


class Parser:
    def __init__(self, tokens: list[Token]):
        self.tokens = tokens
        self.pos = 0
        self.diagnostics: list[Diagnostic] = []
        self.inputs: list[Input] = []
        self.fees: list[Fee] = []
        self.groups: list[Group] = []
        self.returns: list[Return] = []
        self.verifications: list[Verify] = []
        self.version: Version | None = None

    # -- token helpers ------------------------------------------------------

    def _peek(self, offset: int = 0) -> Token:
        return self.tokens[min(self.pos + offset, len(self.tokens) - 1)]

    def _at_end(self) -> bool:
        return self._peek().type == TokenType.EOF

    def _advance(self) -> Token:
        tok = self._peek()
        if not self._at_end():
            self.pos += 1
        return tok

    def _check(self, token_type: TokenType, value: str | None = None) -> bool:
        tok = self._peek()
        return tok.type == token_type and (value is None or tok.value == value)

    def _check_keyword(self, *words: str) -> bool:
        tok = self._peek()
        return tok.type == TokenType.KEYWORD and tok.value in words

    def _match_keyword(self, word: str) -> bool:
        if self._check_keyword(word):
            self._advance()
            return True
        return False

    def _match_symbol(self, sym: str) -> bool:
        if self._check(TokenType.SYMBOL, sym):
            self._advance()
            return True
        return False

    def _fail(self, expected: str) -> _SyntaxAbort:
        tok = self._peek()
        return _SyntaxAbort(f"Expected {expected}, found {tok.describe()}", tok)

    def _expect_keyword(self, word: str) -> Token:
        if not self._check_keyword(word):
            raise self._fail(word)
        return self._advance()

    def _expect_symbol(self, sym: str) -> Token:
        if not self._check(TokenType.SYMBOL, sym):
            raise self._fail(f"'{sym}'")
        return self._advance()

    def _expect_ident(self, what: str = "a name") -> str:
        if not self._check(TokenType.IDENT):
            raise self._fail(what)
        return self._advance().value

    def _expect_string(self, what: str = "a quoted string") -> str:
        if not self._check(TokenType.STRING):
            raise self._fail(what)
        return self._advance().value

    def _syntax_error(self, message: str, token: Token) -> None:
        self.diagnostics.append(
            Diagnostic(
                "syntax",
                Severity.ERROR,
                DiagnosticKind.SYNTAX,
                None,
                f"{message} (column {token.column})",
                token.line,
            )
        )

    # -- top level ----------------------------------------------------------

    def parse(self) -> None:
        while not self._at_end():
            start = self._peek()
            try:
                self._parse_declaration()
            except _SyntaxAbort as e:
                self._syntax_error(e.message, e.token)
                self._synchronize(start)

    def _parse_declaration(self) -> None:
        tok = self._peek()
        if tok.type != TokenType.KEYWORD or tok.value not in TOP_LEVEL:
            raise self._fail("VERSION, GROUP, INPUT, FEE, RETURN or VERIFY")
        match tok.value:
            case "VERSION":
                self._parse_version()
            case "GROUP":
                self.groups.append(self._parse_group())
            case "INPUT":
                self.inputs.append(self._parse_input())
            case "FEE":
                self.fees.append(self._parse_fee())
            case "RETURN":
                self.returns.append(self._parse_return())
            case "VERIFY":
                self.verifications.append(self._parse_verify())

    def _synchronize(self, start: Token) -> None:
        """Skip past the broken declaration.

        Block declarations resume after their END keyword. Otherwise the
        parser resumes at the next top-level keyword that opens a line.
        """
        block_end = {"INPUT": "ENDINPUT", "FEE": "ENDFEE"}.get(start.value)
        logger.debug("Skipping broken declaration starting at line %d", start.line)
        # GROUP also appears as an attribute inside INPUT blocks
        resume_at = TOP_LEVEL - {"GROUP"} if start.value == "INPUT" else TOP_LEVEL
        if self.pos > 0 and self.tokens[self.pos - 1].value == block_end:
            return
        if self._peek() is start:
            self._advance()
        while not self._at_end():
            tok = self._peek()
            if block_end is not None and tok.type == TokenType.KEYWORD and tok.value == block_end:
                self._advance()
                return
            prev = self.tokens[self.pos - 1]
            if tok.type == TokenType.KEYWORD and tok.value in resume_at and tok.line > prev.line:
                return
            self._advance()

    def _parse_version(self) -> None:
        tok = self._expect_keyword("VERSION")
        version_id = self._expect_string("a version identifier")
        description = self._advance().value if self._check(TokenType.STRING) else None
        if self.version is not None:
            raise _SyntaxAbort("VERSION is declared more than once", tok)
        self.version = Version(version_id, description)

    def _parse_group(self) -> Group:
        self._expect_keyword("GROUP")
        name = self._expect_ident("a group name")
        self._expect_keyword("AS")
        text = self._expect_string("a group description")
        weight = Decimal(0)
        if self._match_keyword("WEIGHT"):
            weight = self._parse_signed_number()
        return Group(name, text, weight)

    def _parse_return(self) -> Return:
        self._expect_keyword("RETURN")
        symbol = self._expect_ident("a return symbol")
        self._expect_keyword("AS")
        text = self._expect_string("a return description")
        condition = self.parse_expression() if self._match_keyword("IF") else None
        return Return(symbol, text, condition)

    def _parse_verify(self) -> Verify:
        self._expect_keyword("VERIFY")
        if self._match_keyword("COMPLETE"):
            self._expect_keyword("FEE")
            return VerifyComplete(self._expect_ident("a fee name"))
        if self._match_keyword("MONOTONIC"):
            self._expect_keyword("FEE")
            fee_name = self._expect_ident("a fee name")
            self._expect_keyword("WITH")
            self._expect_keyword("RESPECT")
            self._expect_keyword("TO")
            input_name = self._expect_ident("an input name")
            if not self._check_keyword("INCREASING", "DECREASING"):
                raise self._fail("INCREASING or DECREASING")
            direction = Direction(self._advance().value)
            return VerifyMonotonic(fee_name, input_name, direction)
        raise self._fail("COMPLETE or MONOTONIC")

    # -- inputs -------------------------------------------------------------

    def _parse_signed_number(self) -> Decimal:
        negative = self._match_symbol("-")
        if not self._check(TokenType.NUMBER):
            raise self._fail("a number")
        value = Decimal(self._advance().value)
        return -value if negative else value

    def _parse_date(self) -> date:
        tok = self._peek()
        text = self._expect_string("a date 'YYYY-MM-DD'")
        try:
            return date.fromisoformat(text)
        except ValueError:
            raise _SyntaxAbort(f"Invalid date '{text}', expected YYYY-MM-DD", tok) from None

    def _parse_bound(self, kind: InputKind) -> Decimal | date:
        if kind == InputKind.DATE:
            return self._parse_date()
        return self._parse_signed_number()

    def _parse_input(self) -> Input:
        start = self._expect_keyword("INPUT")
        name = self._expect_ident("an input name")
        kinds = [k.value for k in InputKind]
        if not self._check_keyword(*kinds):
            raise self._fail("an input kind (" + ", ".join(kinds) + ")")
        kind = InputKind(self._advance().value)
        text = self._expect_string("an input description")

        bounds: tuple[Decimal | date, Decimal | date] | None = None
        items: list[ListItem] = []
        defaults: list[str | Decimal | date | bool] = []
        currency: str | None = None
        group: str | None = None

        while not self._check_keyword("ENDINPUT"):
            tok = self._peek()
            if self._match_keyword("BETWEEN"):
                if kind not in (InputKind.NUMBER, InputKind.DATE):
                    raise _SyntaxAbort(f"BETWEEN is not valid for {kind.value} inputs", tok)
                lo = self._parse_bound(kind)
                self._expect_keyword("AND")
                bounds = (lo, self._parse_bound(kind))
            elif self._match_keyword("CHOICE"):
                if kind not in (InputKind.LIST, InputKind.MULTILIST):
                    raise _SyntaxAbort(f"CHOICE is not valid for {kind.value} inputs", tok)
                symbol = self._expect_ident("a choice symbol")
                self._expect_keyword("AS")
                items.append(ListItem(symbol, self._expect_string("a choice description")))
            elif self._match_keyword("DEFAULT"):
                defaults = self._parse_defaults(kind)
            elif self._match_keyword("CURRENCY"):
                if kind != InputKind.AMOUNT:
                    raise _SyntaxAbort(f"CURRENCY is not valid for {kind.value} inputs", tok)
                currency = self._expect_ident("a currency code")
            elif self._match_keyword("GROUP"):
                group = self._expect_ident("a group name")
            else:
                raise self._fail("BETWEEN, CHOICE, DEFAULT, CURRENCY, GROUP or ENDINPUT")
        self._expect_keyword("ENDINPUT")

        match kind:
            case InputKind.NUMBER | InputKind.DATE:
                if bounds is None:
                    raise _SyntaxAbort(f"{kind.value} input '{name}' requires BETWEEN", start)
                lo, hi = bounds
                default = defaults[0] if defaults else lo
                if kind == InputKind.NUMBER:
                    return NumberInput(name, text, lo, hi, default, group)  # type: ignore[arg-type]
                return DateInput(name, text, lo, hi, default, group)  # type: ignore[arg-type]
            case InputKind.BOOLEAN:
                return BooleanInput(name, text, bool(defaults and defaults[0]), group)
            case InputKind.LIST:
                default_symbol = str(defaults[0]) if defaults else (items[0].symbol if items else "")
                return ListInput(name, text, tuple(items), default_symbol, group)
            case InputKind.MULTILIST:
                return MultiListInput(name, text, tuple(items), tuple(str(d) for d in defaults), group)
            case InputKind.AMOUNT:
                if currency is None:
                    raise _SyntaxAbort(f"AMOUNT input '{name}' requires CURRENCY", start)
                amount = defaults[0] if defaults else Decimal(0)
                return AmountInput(name, text, currency, amount, group)  # type: ignore[arg-type]

    def _parse_defaults(self, kind: InputKind) -> list[str | Decimal | date | bool]:
        match kind:
            case InputKind.NUMBER | InputKind.AMOUNT:
                return [self._parse_signed_number()]
            case InputKind.DATE:
                return [self._parse_date()]
            case InputKind.BOOLEAN:
                if not self._check_keyword("TRUE", "FALSE"):
                    raise self._fail("TRUE or FALSE")
                return [self._advance().value == "TRUE"]
            case InputKind.LIST:
                return [self._expect_ident("a choice symbol")]
            case InputKind.MULTILIST:
                symbols: list[str | Decimal | date | bool] = [self._expect_ident("a choice symbol")]
                while self._match_symbol(","):
                    symbols.append(self._expect_ident("a choice symbol"))
                return symbols

    # -- fees ---------------------------------------------------------------

    def _parse_fee(self) -> Fee:
        self._expect_keyword("FEE")
        name = self._expect_ident("a fee name")
        optional = False
        currency: str | None = None
        while self._check_keyword("OPTIONAL", "CURRENCY"):
            if self._match_keyword("OPTIONAL"):
                optional = True
            else:
                self._advance()
                currency = self._expect_ident("a currency code")

        variables: list[LetVar] = []
        cases: list[Case] = []
        while not self._check_keyword("ENDFEE"):
            tok = self._peek()
            if self._match_keyword("LET"):
                if cases:
                    raise _SyntaxAbort("LET must come before the YIELD cases", tok)
                var_name = self._expect_ident("a variable name")
                self._expect_keyword("AS")
                variables.append(LetVar(var_name, self.parse_expression()))
            elif self._match_keyword("YIELD"):
                expression = self.parse_expression()
                condition = self.parse_expression() if self._match_keyword("IF") else None
                cases.append(Case(expression, condition))
            else:
                raise self._fail("LET, YIELD or ENDFEE")
        self._expect_keyword("ENDFEE")
        return Fee(name, tuple(cases), tuple(variables), optional, currency)

    # -- expressions --------------------------------------------------------

    def parse_expression(self) -> Expr:
        return self._parse_or()

    def _parse_or(self) -> Expr:
        expr = self._parse_and()
        while self._match_keyword("OR"):
            expr = Binary("OR", expr, self._parse_and())
        return expr

    def _parse_and(self) -> Expr:
        expr = self._parse_not()
        while self._match_keyword("AND"):
            expr = Binary("AND", expr, self._parse_not())
        return expr

    def _parse_not(self) -> Expr:
        if self._match_keyword("NOT"):
            return Unary("NOT", self._parse_not())
        return self._parse_comparison()

    def _parse_comparison(self) -> Expr:
        expr = self._parse_sum()
        tok = self._peek()
        if tok.type == TokenType.SYMBOL and tok.value in _COMPARISON_SYMBOLS:
            self._advance()
            return Binary(_COMPARISON_SYMBOLS[tok.value], expr, self._parse_sum())
        if self._match_keyword("CONTAINS"):
            return Binary("CONTAINS", expr, self._parse_sum())
        return expr

    def _parse_sum(self) -> Expr:
        expr = self._parse_product()
        while self._check(TokenType.SYMBOL, "+") or self._check(TokenType.SYMBOL, "-"):
            op = self._advance().value
            expr = Binary(op, expr, self._parse_product())
        return expr

    def _parse_product(self) -> Expr:
        expr = self._parse_unary()
        while self._check(TokenType.SYMBOL, "*") or self._check(TokenType.SYMBOL, "/"):
            op = self._advance().value
            expr = Binary(op, expr, self._parse_unary())
        return expr

    def _parse_unary(self) -> Expr:
        if self._match_symbol("-"):
            return Unary("-", self._parse_unary())
        return self._parse_primary()

    def _parse_primary(self) -> Expr:
        tok = self._peek()
        if tok.type == TokenType.NUMBER:
            self._advance()
            try:
                return NumberLit(Decimal(tok.value))
            except InvalidOperation:
                raise _SyntaxAbort(f"Invalid number '{tok.value}'", tok) from None
        if self._match_keyword("TRUE"):
            return BoolLit(True)
        if self._match_keyword("FALSE"):
            return BoolLit(False)
        if self._match_keyword("DATE"):
            return DateLit(self._parse_date())
        if tok.type == TokenType.IDENT:
            self._advance()
            if self._match_symbol("("):
                if tok.value not in BUILTIN_FUNCTIONS:
                    raise _SyntaxAbort(f"Unknown function '{tok.value}'", tok)
                args: list[Expr] = []
                if not self._check(TokenType.SYMBOL, ")"):
                    args.append(self.parse_expression())
                    while self._match_symbol(","):
                        args.append(self.parse_expression())
                self._expect_symbol(")")
                return Call(tok.value, tuple(args))
            return Ref(tok.value)
        if self._match_symbol("("):
            expr = self.parse_expression()
            self._expect_symbol(")")
            return expr
        raise self._fail("an expression")

    # -- assembly -----------------------------------------------------------

    def build_script(self) -> Script:
        input_names = frozenset(i.name for i in self.inputs)
        fees = tuple(_resolve_fee(f, input_names) for f in self.fees)
        returns = tuple(
            Return(r.symbol, r.text, _resolve(r.condition, input_names) if r.condition else None)
            for r in self.returns
        )
        return Script(
            inputs=tuple(self.inputs),
            fees=fees,
            groups=tuple(self.groups),
            returns=returns,
            verifications=tuple(self.verifications),
            version=self.version,
        )


# ---------------------------------------------------------------------------
# Name resolution: identifiers that are neither inputs nor variables in scope
# become list symbols.
# ---------------------------------------------------------------------------


def _resolve(expr: Expr, names: frozenset[str]) -> Expr:
    if isinstance(expr, Ref):
        return expr if expr.name in names else SymbolLit(expr.name)
    if isinstance(expr, Unary):
        return Unary(expr.op, _resolve(expr.operand, names))
    if isinstance(expr, Binary):
        return Binary(expr.op, _resolve(expr.lhs, names), _resolve(expr.rhs, names))
    if isinstance(expr, Call):
        return Call(expr.fn_name, tuple(_resolve(a, names) for a in expr.args))
    return expr


def _resolve_fee(fee: Fee, input_names: frozenset[str]) -> Fee:
    scope = set(input_names)
    variables: list[LetVar] = []
    for v in fee.vars:
        variables.append(LetVar(v.name, _resolve(v.expression, frozenset(scope))))
        scope.add(v.name)
    names = frozenset(scope)
    cases = tuple(
        Case(
            _resolve(c.expression, names),
            _resolve(c.condition, names) if c.condition is not None else None,
        )
        for c in fee.cases
    )
    return Fee(fee.name, cases, tuple(variables), fee.optional, fee.currency)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def parse(source: str) -> ParseResult:
    """Parse and check IPFLang source text.

    Returns ``script=None`` when the text has syntax errors. Otherwise the
    script is returned together with any type diagnostics; callers must not
    evaluate a result whose ``is_valid`` is False.
    """
    tokens, lex_errors = tokenize(source)
    diagnostics = [
        Diagnostic(
            "syntax",
            Severity.ERROR,
            DiagnosticKind.SYNTAX,
            None,
            f"{e.message} (column {e.column})",
            e.line,
        )
        for e in lex_errors
    ]

    parser = Parser(tokens)
    parser.parse()
    diagnostics.extend(parser.diagnostics)

    if diagnostics:
        logger.debug("Parse produced %d syntax error(s)", len(diagnostics))
        diagnostics.sort(key=lambda d: d.line or 0)
        return ParseResult(None, tuple(diagnostics))

    script = parser.build_script()
    checked = check_script(script)
    logger.debug(
        "Parsed %d inputs, %d fees; %d type diagnostic(s)",
        len(script.inputs),
        len(script.fees),
        len(checked.diagnostics),
    )
    return ParseResult(script, checked.diagnostics)


def compile_script(source: str) -> Script:
    """Parse ``source`` and return the script, raising ParseError on any error."""
    result = parse(source)
    if not result.is_valid or result.script is None:
        raise ParseError(result.errors)
    return result.script


def parse_expression(text: str) -> Expr:
    """Parse a standalone expression. Identifiers are left as references."""
    tokens, lex_errors = tokenize(text)
    if lex_errors:
        e = lex_errors[0]
        raise ParseError(
            [Diagnostic("syntax", Severity.ERROR, DiagnosticKind.SYNTAX, None, e.message, e.line)]
        )
    parser = Parser(tokens)
    try:
        expr = parser.parse_expression()
        if not parser._at_end():
            raise parser._fail("end of expression")
    except _SyntaxAbort as e:
        raise ParseError(
            [Diagnostic("syntax", Severity.ERROR, DiagnosticKind.SYNTAX, None, e.message, e.token.line)]
        ) from None
    return expr
