"""Physical staging helpers.

Pure, I/O-free building blocks used by the workflow:
    - `height_validator`: lift / final-height derivation and admission check.
    - `history`: bounded FIFO of generated image references.
"""
