"""
lips, a polish notation calculator

grammar:
number                : /-?[0-9]+/
operator              : '+' | '-' | '*' | '/' | '%' | '^'
sexpr                 : '(' expr* ')'
expr                  : number
                      | '(' operator expr expr+ ')'
program               : /^/ operator expr expr+ /$/
"""

from collections import namedtuple
from enum import Enum
import argparse
import os

from pyecharts import options as opts
from pyecharts.charts import Tree

try:
    import readline  # noqa: F401  line editing & history for input()
except ImportError:  # windows
    pass

VERSION = '0.0.0.0.1'
PROMPT = 'Lips \U0001F48B > '
LOCAL_ECHARTS = True
_SHOULD_LOG_EVAL = False

# deepest bracket nesting the parser accepts
MAX_DEPTH = 256

# evaluator works on 64-bit signed integers
INT_MIN = -2 ** 63
INT_MAX = 2 ** 63 - 1

###############################################################################
#                                                                             #
#   ERROR MESSAGE                                                             #
#                                                                             #
###############################################################################

Position = namedtuple('Position', ['line', 'col'])


class ErrorInfo:
    # lexer error

    @staticmethod
    def unrecognized_char(item):
        return f'unrecognized char `{item}`'

    # parser error

    @staticmethod
    def unexpected_token(item, want):
        return f'token `{item}` is not expected, want `{want}`'

    @staticmethod
    def missing_operand(item):
        return f'operator `{item}` needs at least two operands'

    @staticmethod
    def too_deep(limit):
        return f"expression nested deeper than {limit} levels"


class Error(Exception):
    def __init__(self, position, message):
        self.position = position
        self.message = message

    def __str__(self):
        return f'{self.__class__.__name__}: <{self.position.line}:{self.position.col}>: {self.message}'

    __repr__ = __str__


class LexerError(Error):
    pass


class ParserError(Error):
    pass


###############################################################################
#                                                                             #
#  LEXER                                                                      #
#                                                                             #
###############################################################################

class TokenType(Enum):
    # misc
    NUMBER          = 'NUMBER'
    EOF             = 'EOF'
    # operator
    PLUS            = '+'
    MINUS           = '-'
    MUL             = '*'
    DIV             = '/'
    MOD             = '%'
    POW             = '^'
    # bracket
    LPAREN          = '('
    RPAREN          = ')'


OPERATORS = (
    TokenType.PLUS,
    TokenType.MINUS,
    TokenType.MUL,
    TokenType.DIV,
    TokenType.MOD,
    TokenType.POW,
)


def is_digit(char):
    """ascii digit only, `str.isdigit` also takes other scripts
    """
    return char is not None and '0' <= char <= '9'


class Token:
    def __init__(self, token_type, value, position):
        """Token

        Args:
          token_type: TokenType
          value: str, literal text of the token
          position: Position
        """
        self.type = token_type
        self.value = value
        self.position = position

    def __str__(self):
        return f'Token({self.type}, {repr(self.value)}, pos={self.position.line}:{self.position.col})'

    def __repr__(self):
        return self.__str__()


class Lexer:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0
        self.current_char = self.text[self.pos] if self.text else None
        # '-' right after these is an operator, never a sign
        self.prev_type = None
        # for error information
        self.line = 1
        self.col = 1

    def position(self):
        return Position(self.line, self.col)

    def error(self, message):
        raise LexerError(self.position(), message)

    def advance(self):
        """get next char, and increse the pos pointer
        """
        if self.current_char == '\n':
            self.line += 1
            self.col = 0

        self.pos += 1
        self.col += 1
        if self.pos > len(self.text) - 1:
            self.current_char = None  # end of input
        else:
            self.current_char = self.text[self.pos]

    def peek(self):
        """lookup next char, but not increse the pos pointer
        """
        peek_pos = self.pos + 1
        if peek_pos > len(self.text) - 1:
            return None
        return self.text[peek_pos]

    def skip_whitespace(self):
        while self.current_char is not None and self.current_char.isspace():
            self.advance()

    def at_operator_position(self):
        return self.prev_type in (None, TokenType.LPAREN)

    def number(self):
        """parse a number literal like `-?[0-9]+`

        the value is kept as text, the evaluator decides whether it fits.
        """
        token = Token(TokenType.NUMBER, None, self.position())

        result = ''
        if self.current_char == '-':
            result += self.current_char
            self.advance()
        while is_digit(self.current_char):
            result += self.current_char
            self.advance()

        token.value = result
        return token

    def _next_token(self):
        while self.current_char is not None:
            if self.current_char.isspace():
                self.skip_whitespace()
                continue

            if is_digit(self.current_char):
                return self.number()

            if (self.current_char == '-'
                    and not self.at_operator_position()
                    and is_digit(self.peek())):
                return self.number()

            # single-char token
            try:
                token_type = TokenType(self.current_char)
            except ValueError:
                self.error(ErrorInfo.unrecognized_char(self.current_char))
            else:
                token = Token(token_type, self.current_char, self.position())
                self.advance()
                return token

        return Token(TokenType.EOF, None, self.position())

    def get_next_token(self):
        """lexical analyzer, one token one time
        """
        token = self._next_token()
        self.prev_type = token.type
        return token


###############################################################################
#                                                                             #
#  PARSE TREE & PARSER                                                        #
#                                                                             #
###############################################################################

class ParseNode:
    """one node of the parse tree

    tag is the `|` joined names of the rules that matched, e.g.
    `expr|number|regex`. A node owns its children; a node is a leaf iff it
    has no children.
    """

    def __init__(self, tag, content='', position=None):
        self.tag = tag
        self.content = content
        self.position = position or Position(1, 1)
        self.children = []

    def add(self, child):
        self.children.append(child)
        return self

    def is_leaf(self):
        return len(self.children) == 0

    def count(self):
        """number of nodes in this tree, the node itself included
        """
        if self.is_leaf():
            return 1

        total = 1
        for child in self.children:
            total += child.count()
        return total

    def dump(self, level=0):
        """text listing of the tree, one node per line
        """
        indent = '  ' * level
        if self.is_leaf():
            line = f"{indent}{self.tag}:{self.position.line}:{self.position.col} '{self.content}'"
            return line

        lines = [f'{indent}{self.tag} ']
        for child in self.children:
            lines.append(child.dump(level + 1))
        return '\n'.join(lines)

    def __str__(self):
        return f'ParseNode({self.tag}, {repr(self.content)}, children={len(self.children)})'

    __repr__ = __str__


class Parser:
    def __init__(self, lexer: Lexer):
        self.lexer = lexer
        self.depth = 0
        self.current_token = self.get_next_token()

    def get_next_token(self):
        return self.lexer.get_next_token()

    def error(self, token, message):
        raise ParserError(token.position, message)

    def eat(self, token_type):
        """verify the token type
        """
        if self.current_token.type == token_type:
            self.current_token = self.get_next_token()
        else:
            self.error(self.current_token, ErrorInfo.unexpected_token(self.current_token.value, token_type.value))

    def operator(self):
        """parse operator

        operator : '+' | '-' | '*' | '/' | '%' | '^'
        """
        token = self.current_token
        if token.type not in OPERATORS:
            self.error(token, ErrorInfo.unexpected_token(token.value, 'operator'))
        self.eat(token.type)
        return ParseNode('operator|char', token.value, token.position)

    def operands(self, node, op_node):
        """parse `expr expr+` into node
        """
        count = 0
        while self.current_token.type in (TokenType.NUMBER, TokenType.LPAREN):
            node.add(self.expr())
            count += 1

        if count < 2:
            token = self.current_token
            if token.type in (TokenType.RPAREN, TokenType.EOF):
                self.error(token, ErrorInfo.missing_operand(op_node.content))
            self.error(token, ErrorInfo.unexpected_token(token.value, 'expr'))

    def expr(self):
        """parse expr

        expr : number
             | '(' operator expr expr+ ')'
        """
        token = self.current_token
        if token.type == TokenType.NUMBER:
            self.eat(TokenType.NUMBER)
            return ParseNode('expr|number|regex', token.value, token.position)

        if token.type == TokenType.LPAREN and self.depth >= MAX_DEPTH:
            self.error(token, ErrorInfo.too_deep(MAX_DEPTH))
        self.depth += 1

        node = ParseNode('expr|>', '', token.position)
        self.eat(TokenType.LPAREN)
        node.add(ParseNode('char', '(', token.position))
        op_node = self.operator()
        node.add(op_node)
        self.operands(node, op_node)

        token = self.current_token
        self.eat(TokenType.RPAREN)
        node.add(ParseNode('char', ')', token.position))
        self.depth -= 1
        return node

    def program(self):
        """parse program

        program : /^/ operator expr expr+ /$/
        """
        node = ParseNode('program|>', '', Position(1, 1))
        node.add(ParseNode('regex', '', Position(1, 1)))
        op_node = self.operator()
        node.add(op_node)
        self.operands(node, op_node)

        token = self.current_token
        if token.type != TokenType.EOF:
            self.error(token, ErrorInfo.unexpected_token(token.value, TokenType.EOF.value))
        node.add(ParseNode('regex', '', token.position))
        return node

    def parse(self):
        return self.program()


def parse(text):
    """parse one line into a ParseNode

    Raises:
      LexerError, ParserError: on malformed input
    """
    return Parser(Lexer(text)).parse()


###############################################################################
#                                                                             #
#   VALUE                                                                     #
#                                                                             #
###############################################################################

class ValueType(Enum):
    ERR             = 'ERR'
    NUM             = 'NUM'
    SYM             = 'SYM'
    SEXPR           = 'SEXPR'


class ErrorKind(Enum):
    DIV_ZERO        = 'Division By Zero!'
    BAD_OP          = 'Invalid Operator!'
    BAD_NUM         = 'Invalid Number!'


class Value:
    """result of an evaluation

    Build one through the factories `number`, `error`, `symbol` and `sexpr`;
    the payload properties check the discriminant before handing data out.
    An s-expression owns its cells: a value lives in at most one of them.
    """

    def __init__(self, value_type, payload):
        self._type = value_type
        self._payload = payload
        self._owned = False

    @staticmethod
    def number(x):
        return Value(ValueType.NUM, x)

    @staticmethod
    def error(kind):
        return Value(ValueType.ERR, kind)

    @staticmethod
    def symbol(s):
        return Value(ValueType.SYM, s)

    @staticmethod
    def sexpr():
        return Value(ValueType.SEXPR, [])

    @property
    def type(self):
        return self._type

    def _expect(self, value_type):
        if self._type != value_type:
            raise TypeError(f'{self._type.value} value has no {value_type.value} payload')
        return self._payload

    @property
    def num(self):
        return self._expect(ValueType.NUM)

    @property
    def err(self):
        return self._expect(ValueType.ERR)

    @property
    def sym(self):
        return self._expect(ValueType.SYM)

    @property
    def cells(self):
        return tuple(self._expect(ValueType.SEXPR))

    def is_error(self):
        return self._type == ValueType.ERR

    def _contains(self, other):
        if self is other:
            return True
        if self._type != ValueType.SEXPR:
            return False
        return any(cell._contains(other) for cell in self._payload)

    def append(self, value):
        """move value into this s-expression, return self
        """
        cells = self._expect(ValueType.SEXPR)
        if value._owned:
            raise ValueError('value already belongs to an s-expression')
        if value._contains(self):
            raise ValueError('s-expression can not contain itself')
        value._owned = True
        cells.append(value)
        return self

    def release(self):
        """release this value and everything it owns

        Returns:
          number of values released
        """
        released = 1
        if self._type == ValueType.SEXPR:
            while self._payload:
                cell = self._payload.pop()
                cell._owned = False
                released += cell.release()
        return released

    def __eq__(self, other):
        if not isinstance(other, Value):
            return NotImplemented
        return self._type == other._type and self._payload == other._payload

    def __hash__(self):
        if self._type == ValueType.SEXPR:
            return hash((self._type, tuple(self._payload)))
        return hash((self._type, self._payload))

    def __str__(self):
        return format_value(self)

    def __repr__(self):
        return f'Value({self._type.value}, {format_value(self)!r})'


def checked_number(x):
    """Number(x) if x fits the evaluator's integers, else Error(BAD_NUM)
    """
    if INT_MIN <= x <= INT_MAX:
        return Value.number(x)
    return Value.error(ErrorKind.BAD_NUM)


def read_number(text):
    try:
        x = int(text, 10)
    except ValueError:
        return Value.error(ErrorKind.BAD_NUM)
    return checked_number(x)


def read(node):
    """read a parse tree as an s-expression value

    numbers become Number, operators become Symbol, every bracketed form and
    the whole program become SExpression.
    """
    if 'number' in node.tag:
        return read_number(node.content)
    if 'operator' in node.tag:
        return Value.symbol(node.content)

    result = Value.sexpr()
    for child in node.children:
        if 'expr' in child.tag or 'operator' in child.tag:
            result.append(read(child))
    return result


###############################################################################
#                                                                             #
#  EVALUATOR                                                                  #
#                                                                             #
###############################################################################

MOD = '%'


def _div(a, b):
    """integer division truncating toward zero
    """
    q = abs(a) // abs(b)
    return q if (a < 0) == (b < 0) else -q


def _pow(a, b):
    if b < 0:
        if a == 0:
            return Value.error(ErrorKind.DIV_ZERO)
        if a == 1:
            return Value.number(1)
        if a == -1:
            return Value.number(-1 if b % 2 else 1)
        return Value.number(0)
    # anything above |2|**63 overflows, skip computing it
    if abs(a) > 1 and b >= 64:
        return Value.error(ErrorKind.BAD_NUM)
    return checked_number(a ** b)


def eval_op(op, a, b):
    """combine two operands with op

    an error operand wins over everything, the left one first.
    """
    if a.is_error():
        return a
    if b.is_error():
        return b

    x, y = a.num, b.num
    if op == '+':
        return checked_number(x + y)
    if op == '-':
        return checked_number(x - y)
    if op == '*':
        return checked_number(x * y)
    if op == '/':
        if y == 0:
            return Value.error(ErrorKind.DIV_ZERO)
        return checked_number(_div(x, y))
    if op == MOD:
        if y == 0:
            return Value.error(ErrorKind.DIV_ZERO)
        return checked_number(x - y * _div(x, y))
    if op == '^':
        return _pow(x, y)

    return Value.error(ErrorKind.BAD_OP)


class Evaluator:
    def __init__(self, tree) -> None:
        self.tree = tree
        self.trace = []   # evaluation steps, kept when tracing

    def log(self, msg):
        if _SHOULD_LOG_EVAL:
            self.trace.append(msg)

    def eval(self, node: ParseNode):
        if 'number' in node.tag:
            result = read_number(node.content)
            self.log(f'number: {node.content} -> {result}')
            return result

        children = node.children
        op = children[1].content

        result = self.eval(children[2])

        # operands are all evaluated, even when result is already an error
        i = 3
        while i < len(children) and 'expr' in children[i].tag:
            operand = self.eval(children[i])
            self.log(f'fold: {op} {result} {operand}')
            result = eval_op(op, result, operand)
            i += 1

        self.log(f'result: {result}')
        return result

    def evaluate(self):
        return self.eval(self.tree)


###############################################################################
#                                                                             #
#   PRINTER                                                                   #
#                                                                             #
###############################################################################

def format_value(v):
    if v.type == ValueType.NUM:
        return str(v.num)
    if v.type == ValueType.ERR:
        return f'Error: {v.err.value}'
    if v.type == ValueType.SYM:
        return v.sym
    return '(' + ' '.join(format_value(cell) for cell in v.cells) + ')'


###############################################################################
#                                                                             #
#  DISPLAYER                                                                  #
#                                                                             #
###############################################################################

class Displayer:
    def __init__(self, tree) -> None:
        self.tree = tree

    def visit(self, node: ParseNode):
        """pack data to display
        """
        if 'number' in node.tag or 'operator' in node.tag:
            return {'name': node.content}

        data = {
            'name': node.tag,
            'children': []
        }
        for child in node.children:
            if 'expr' in child.tag or 'operator' in child.tag:
                data['children'].append(self.visit(child))
        return data

    def display(self, filename='Tree.html'):
        data = self.visit(self.tree)
        (
            Tree()
            .add(
                series_name="",  # name
                data=[data],  # data
                initial_tree_depth=-1,  # all expand
                orient="TB",  # top-to-bottom
                label_opts=opts.LabelOpts(
                    position="top",
                    vertical_align="middle",
                ),
            )
            .set_global_opts(title_opts=opts.TitleOpts(title="Tree"))
            .render('html')
        )
        # modify js reference to local
        with open('html', 'r') as fin:
            content = fin.readlines()
            content[4] = '    <title>Tree</title>\n'
            if LOCAL_ECHARTS:
                content[5] = '    <script type="text/javascript" src="echarts.min.js"></script>\n'
        with open(filename, 'w') as fout:
            fout.writelines(content)
        os.remove('html')


###############################################################################
#                                                                             #
#   MAIN                                                                      #
#                                                                             #
###############################################################################

def interpret(text):
    """parse and evaluate one line
    """
    tree = parse(text)
    return Evaluator(tree).evaluate()


def rep(text, args=None):
    """one read-eval-print cycle, returns the line to print
    """
    try:
        tree = parse(text)
    except (LexerError, ParserError) as e:
        return str(e)

    lines = []
    if args is not None:
        if args.ast:
            lines.append(tree.dump())
        if args.nodes:
            lines.append(f'Number of nodes: {tree.count()}')
        if args.read:
            sexpr = read(tree)
            lines.append(format_value(sexpr))
            sexpr.release()
        if args.display:
            Displayer(tree).display()

    evaluator = Evaluator(tree)
    result = evaluator.evaluate()
    lines.extend(evaluator.trace)
    lines.append(format_value(result))
    result.release()
    return '\n'.join(lines)


def make_arg_parser():
    parser = argparse.ArgumentParser(description='Lips - polish notation calculator')
    parser.add_argument('-c', '--command', help='Evaluate one line and exit')
    parser.add_argument('--ast', action='store_true', help='Print the parse tree')
    parser.add_argument('--nodes', action='store_true', help='Print the number of parse tree nodes')
    parser.add_argument('--read', action='store_true', help='Print the line read as an s-expression')
    parser.add_argument('--trace', action='store_true', help='Print evaluation steps')
    parser.add_argument('--display', action='store_true', help='Render the parse tree to Tree.html')
    return parser


def main(argv=None):
    global _SHOULD_LOG_EVAL

    args = make_arg_parser().parse_args(argv)
    _SHOULD_LOG_EVAL = args.trace

    if args.command is not None:
        print(rep(args.command, args))
        return

    print(f'Lips - Version {VERSION}')
    print('Press ctrl+c to exit\n')

    while True:
        try:
            text = input(PROMPT)
        except (EOFError, KeyboardInterrupt):
            print()
            break
        if not text.strip():
            continue

        print(rep(text, args))


if __name__ == '__main__':
    main()
