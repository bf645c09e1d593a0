"""Enums for finite-difference rollback configuration."""

from enum import Enum

__all__ = [
    "OptionType",
    "ExerciseType",
    "FdmSchemeType",
    "KrylovSolverType",
    "BoundarySide",
    "DayCountConvention",
]


class OptionType(Enum):
    CALL = "call"
    PUT = "put"


class ExerciseType(Enum):
    EUROPEAN = "european"
    AMERICAN = "american"
    BERMUDAN = "bermudan"


class FdmSchemeType(Enum):
    HUNDSDORFER = "hundsdorfer"
    DOUGLAS = "douglas"
    CRAIG_SNEYD = "craig_sneyd"
    MODIFIED_CRAIG_SNEYD = "modified_craig_sneyd"
    IMPLICIT_EULER = "implicit_euler"
    EXPLICIT_EULER = "explicit_euler"
    METHOD_OF_LINES = "method_of_lines"
    TR_BDF2 = "tr_bdf2"
    CRANK_NICOLSON = "crank_nicolson"


class KrylovSolverType(Enum):
    BICGSTAB = "bicgstab"
    GMRES = "gmres"


class BoundarySide(Enum):
    LOWER = "lower"
    UPPER = "upper"


class DayCountConvention(Enum):
    ACT_360 = "ACT/360"
    ACT_365F = "ACT/365F"
    ACT_365_25 = "ACT/365.25"
    THIRTY_360_US = "30/360 US"
