"""Lark grammar for derived-variable formulas.

Formulas are small arithmetic/boolean expressions written by plant
engineers, e.g. ``avg(JPM_RTD2_Serpentin_Izq_C, JPM_RTD3_Serpentin_Der_C)``
or ``iff(Operacion == 1, corriente_A * 0.38, 0)``.
"""

from lark import Lark

FORMULA_GRAMMAR = r"""
    ?start: expr

    ?expr: or_test "?" expr ":" expr        -> conditional
         | or_test

    ?or_test: or_test ("or" | "||") and_test -> or_op
            | and_test

    ?and_test: and_test ("and" | "&&") not_test -> and_op
             | not_test

    ?not_test: ("not" | "!") not_test       -> not_op
             | comparison

    ?comparison: sum
               | comparison "==" sum        -> eq
               | comparison "!=" sum        -> ne
               | comparison "<" sum         -> lt
               | comparison "<=" sum        -> le
               | comparison ">" sum         -> gt
               | comparison ">=" sum        -> ge

    ?sum: product
        | sum "+" product                   -> add
        | sum "-" product                   -> sub

    ?product: unary
            | product "*" unary             -> mul
            | product "/" unary             -> div
            | product "%" unary             -> mod

    ?unary: power
          | "-" unary                       -> neg
          | "+" unary                       -> pos

    ?power: atom
          | atom ("^" | "**") unary         -> power

    ?atom: NUMBER                           -> number
         | "true"                           -> true
         | "false"                          -> false
         | NAME "(" [arguments] ")"         -> call
         | NAME                             -> var
         | "(" expr ")"

    arguments: expr ("," expr)*

    NAME: /[A-Za-z_][A-Za-z0-9_]*/

    %import common.NUMBER
    %import common.WS
    %ignore WS
"""

formula_parser = Lark(FORMULA_GRAMMAR, parser="lalr", maybe_placeholders=True)
