from .enums import OptionType, ExerciseType, FdmSchemeType, BoundarySide, DayCountConvention
from .params import FdmSchemeDesc, FdmSolverDesc
from .rates import DiscountCurve
from .market_environment import Quote, BlackScholesProcess, HullWhite
from .instruments import PlainVanillaPayoff, Exercise
from .analytic import black_scholes_price, hull_white_bond_option_price


__all__ = [
    "OptionType",
    "ExerciseType",
    "FdmSchemeType",
    "BoundarySide",
    "DayCountConvention",
    "FdmSchemeDesc",
    "FdmSolverDesc",
    "DiscountCurve",
    "Quote",
    "BlackScholesProcess",
    "HullWhite",
    "PlainVanillaPayoff",
    "Exercise",
    "black_scholes_price",
    "hull_white_bond_option_price",
]
