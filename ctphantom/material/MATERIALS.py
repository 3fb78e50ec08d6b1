from typing import List

from .material import MaterialDefinition

#### EGSnrc 700 keV PEGS4 media (ICRU), in egsphant header order.
# Brackets are those documented for each medium: CT number [lo, hi), mass density [lo, hi) in g/cm^3.
# The classifier in ramp.py carries its own, slightly different brackets.

DEFAULT_MATERIALS: List[MaterialDefinition] = [
    MaterialDefinition("AIR700ICRU", hu_range=(0, 50), density_range=(0.001, 0.044)),
    MaterialDefinition("LUNG700ICRU", hu_range=(50, 300), density_range=(0.044, 0.302)),
    MaterialDefinition(
        "ICRUTISSUE700ICRU", hu_range=(300, 1125), density_range=(0.302, 1.101)
    ),
    MaterialDefinition(
        "ICRPBONE700ICRU", hu_range=(1125, 3000), density_range=(1.101, 2.088)
    ),
    # not produced by the classifier, but listed in every header
    MaterialDefinition("H2O700ICRU"),
]
