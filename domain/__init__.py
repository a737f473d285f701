"""Describes the blend domain. Centres around `synthesize_blend`.

Why is this hard?

- A blend is proposed by a large language model. It is slow, it is served
  behind an api, and it does not reliably respect numbers.
- The numbers are hard: the quantities must sum exactly, stay above a
  minimum, stay under stock, and use 2..5 distinct ingredients.
- So the model is never trusted. Its output is parsed, scored, validated,
  and when every attempt fails the best one is repaired.

Everything here is pure apart from the generator call, so the generator can
be faked.
"""
