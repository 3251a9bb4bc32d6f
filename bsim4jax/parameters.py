"""Model-card and instance parameter sets.

Every parameter carries a value and a "given" flag. Values that were not
supplied take the BSIM4 v4.8 default; several defaults depend on other
parameters and are filled in by Bsim4Model.setup() and the instance
setup, which use ParameterSet.default() so the given flag stays False.

Parameter names are the lower-cased SPICE model-card names. Names that are
Python keywords carry a trailing underscore (``lambda_``, ``as_``); the
plain spelling is accepted as an alias when setting values.
"""

from typing import Any, Dict, Iterable, Tuple

# =============================================================================
# Model parameter defaults (unbinned)
# =============================================================================

MODEL_DEFAULTS: Dict[str, float] = {
    # Model selectors
    "mobmod": 0, "binunit": 1, "paramchk": 1, "cvchargemod": 0, "capmod": 2,
    "diomod": 1, "rdsmod": 0, "trnqsmod": 0, "acnqsmod": 0, "rbodymod": 0,
    "rgatemod": 0, "permod": 1, "geomod": 0, "rgeomod": 0, "fnoimod": 1,
    "tnoimod": 0, "mtrlmod": 0, "mtrlcompatmod": 0, "gidlmod": 0,
    "igcmod": 0, "igbmod": 0, "tempmod": 0, "wpemod": 0,
    "version": 4.80,
    # Oxide and material
    "toxref": 30.0e-10, "eot": 15.0e-10, "vddeot": 0.0, "tempeot": 300.15,
    "leffeot": 1.0, "weffeot": 10.0, "ados": 1.0, "bdos": 1.0,
    "toxe": 30.0e-10, "toxp": 0.0, "toxm": 0.0, "dtox": 0.0, "epsrox": 3.9,
    "phig": 4.05, "epsrgate": 11.7, "easub": 4.05, "epsrsub": 11.7,
    "ni0sub": 1.45e10, "bg0sub": 1.16, "tbgasub": 7.02e-4, "tbgbsub": 1108.0,
    # Threshold voltage
    "cdsc": 2.4e-4, "cdscb": 0.0, "cdscd": 0.0, "cit": 0.0, "nfactor": 1.0,
    "xj": 0.15e-6, "vsat": 8.0e4, "a0": 1.0, "ags": 0.0, "a1": 0.0, "a2": 1.0,
    "at": 3.3e4, "keta": -0.047, "nsub": 6.0e16, "ndep": 1.7e17,
    "nsd": 1.0e20, "ngate": 0.0, "gamma1": 0.0, "gamma2": 0.0, "vbx": 0.0,
    "vbm": -3.0, "xt": 1.55e-7, "k1": 0.0, "kt1": -0.11, "kt1l": 0.0,
    "kt2": 0.022, "k2": 0.0, "k3": 80.0, "k3b": 0.0, "lpe0": 1.74e-7,
    "lpeb": 0.0, "dvtp0": 0.0, "dvtp1": 0.0, "dvtp2": 0.0, "dvtp3": 0.0,
    "dvtp4": 0.0, "dvtp5": 0.0, "w0": 2.5e-6, "dvt0": 2.2, "dvt1": 0.53,
    "dvt2": -0.032, "dvt0w": 0.0, "dvt1w": 5.3e6, "dvt2w": -0.032,
    # vth0 and vfb are derived from each other when not given
    "drout": 0.56, "dsub": 0.0, "vth0": 0.0, "vfb": -1.0,
    # Mobility
    "eu": 0.0, "ucs": 0.0, "ua": 0.0, "ua1": 1.0e-9, "ub": 1.0e-19,
    "ub1": -1.0e-18, "uc": 0.0, "uc1": 0.0, "u0": 0.0, "ute": -1.5,
    "ucste": -4.775e-3, "ud": 0.0, "ud1": 0.0, "up": 0.0, "lp": 1.0e-8,
    "lud": 0.0, "lud1": 0.0, "lup": 0.0, "llp": 0.0, "wud": 0.0, "wud1": 0.0,
    "wup": 0.0, "wlp": 0.0, "pud": 0.0, "pud1": 0.0, "pup": 0.0, "plp": 0.0,
    # Subthreshold and output resistance
    "voff": -0.08, "tvoff": 0.0, "tnfactor": 0.0, "teta0": 0.0,
    "tvoffcv": 0.0, "voffl": 0.0, "voffcvl": 0.0, "minv": 0.0, "minvcv": 0.0,
    "fprout": 0.0, "pdits": 0.0, "pditsd": 0.0, "pditsl": 0.0, "delta": 0.01,
    "rdsw": 200.0, "rdswmin": 0.0, "rdwmin": 0.0, "rswmin": 0.0, "rdw": 100.0,
    "rsw": 100.0, "prwg": 1.0, "prwb": 0.0, "prt": 0.0, "eta0": 0.08,
    "etab": -0.07, "pclm": 1.3, "pdibl1": 0.39, "pdibl2": 0.0086,
    "pdiblb": 0.0, "pscbe1": 4.24e8, "pscbe2": 1.0e-5, "pvag": 0.0,
    "wr": 1.0, "dwg": 0.0, "dwb": 0.0, "b0": 0.0, "b1": 0.0,
    # Impact ionization and GIDL/GISL
    "alpha0": 0.0, "alpha1": 0.0, "beta0": 0.0, "phin": 0.0,
    "agidl": 0.0, "bgidl": 2.3e9, "cgidl": 0.5, "egidl": 0.8, "fgidl": 0.0,
    "kgidl": 0.0, "rgidl": 0.0, "agisl": 0.0, "bgisl": 0.0, "cgisl": 0.0,
    "egisl": 0.0, "fgisl": 0.0, "kgisl": 0.0, "rgisl": 0.0,
    # Gate tunneling
    "aigc": 0.0, "bigc": 0.0, "cigc": 0.0, "aigsd": 0.0, "bigsd": 0.0,
    "cigsd": 0.0, "aigs": 0.0, "bigs": 0.0, "cigs": 0.0, "aigd": 0.0,
    "bigd": 0.0, "cigd": 0.0, "aigbacc": 1.36e-2, "bigbacc": 1.71e-3,
    "cigbacc": 0.075, "aigbinv": 1.11e-2, "bigbinv": 9.49e-4,
    "cigbinv": 0.006, "nigc": 1.0, "nigbinv": 3.0, "nigbacc": 1.0,
    "ntox": 1.0, "eigbinv": 1.1, "pigcd": 1.0, "poxedge": 1.0,
    "vfbsdoff": 0.0, "tvfbsdoff": 0.0,
    # Gate resistance, velocity overshoot, source-end velocity limit
    "xrcrg1": 12.0, "xrcrg2": 1.0, "lambda_": 0.0, "vtl": 2.0e5, "xn": 3.0,
    "lc": 5.0e-9,
    # Thermal and flicker noise coefficients
    "tnoia": 1.5, "tnoib": 3.5, "tnoic": 0.0, "rnoia": 0.577,
    "rnoib": 0.5164, "rnoic": 0.395, "ntnoi": 1.0, "lintnoi": 0.0,
    "noia": 0.0, "noib": 0.0, "noic": 8.75e9, "em": 4.1e7, "ef": 1.0,
    "af": 1.0, "kf": 0.0,
    # Layout stress
    "saref": 1e-6, "sbref": 1e-6, "wlod": 0.0, "ku0": 0.0, "kvsat": 0.0,
    "kvth0": 0.0, "tku0": 0.0, "llodku0": 0.0, "wlodku0": 0.0,
    "llodvth": 0.0, "wlodvth": 0.0, "lku0": 0.0, "wku0": 0.0, "pku0": 0.0,
    "lkvth0": 0.0, "wkvth0": 0.0, "pkvth0": 0.0, "stk2": 0.0, "lodk2": 1.0,
    "steta0": 0.0, "lodeta0": 1.0,
    # Well proximity
    "web": 0.0, "wec": 0.0, "kvth0we": 0.0, "k2we": 0.0, "ku0we": 0.0,
    "scref": 1.0e-6, "lkvth0we": 0.0, "lk2we": 0.0, "lku0we": 0.0,
    "wkvth0we": 0.0, "wk2we": 0.0, "wku0we": 0.0, "pkvth0we": 0.0,
    "pk2we": 0.0, "pku0we": 0.0,
    # Junction diode limits and trap-assisted tunneling
    "ijthdfwd": 0.0, "ijthsfwd": 0.1, "ijthdrev": 0.0, "ijthsrev": 0.1,
    "xjbvd": 0.0, "xjbvs": 1.0, "bvd": 0.0, "bvs": 10.0,
    "jtss": 0.0, "jtsd": 0.0, "jtssws": 0.0, "jtsswd": 0.0, "jtsswgs": 0.0,
    "jtsswgd": 0.0, "jtweff": 0.0, "njts": 20.0, "njtssw": 20.0,
    "njtsswg": 20.0, "njtsd": 0.0, "njtsswd": 0.0, "njtsswgd": 0.0,
    "xtss": 0.02, "xtsd": 0.0, "xtssws": 0.02, "xtsswd": 0.0,
    "xtsswgs": 0.02, "xtsswgd": 0.0, "tnjts": 0.0, "tnjtssw": 0.0,
    "tnjtsswg": 0.0, "tnjtsd": 0.0, "tnjtsswd": 0.0, "tnjtsswgd": 0.0,
    "vtss": 10.0, "vtsd": 0.0, "vtssws": 10.0, "vtsswd": 0.0,
    "vtsswgs": 10.0, "vtsswgd": 0.0,
    # Body resistance network
    "gbmin": 1.0e-12, "rbdb": 50.0, "rbpb": 50.0, "rbsb": 50.0, "rbps": 50.0,
    "rbpd": 50.0, "rbps0": 50.0, "rbpsl": 0.0, "rbpsw": 0.0, "rbpsnf": 0.0,
    "rbpd0": 50.0, "rbpdl": 0.0, "rbpdw": 0.0, "rbpdnf": 0.0,
    "rbpbx0": 100.0, "rbpbxl": 0.0, "rbpbxw": 0.0, "rbpbxnf": 0.0,
    "rbpby0": 100.0, "rbpbyl": 0.0, "rbpbyw": 0.0, "rbpbynf": 0.0,
    "rbsbx0": 100.0, "rbsby0": 100.0, "rbdbx0": 100.0, "rbdby0": 100.0,
    "rbsdbxl": 0.0, "rbsdbxw": 0.0, "rbsdbxnf": 0.0, "rbsdbyl": 0.0,
    "rbsdbyw": 0.0, "rbsdbynf": 0.0,
    # Capacitance
    "cgsl": 0.0, "cgdl": 0.0, "ckappas": 0.6, "ckappad": 0.0, "cf": 0.0,
    "clc": 0.1e-6, "cle": 0.6, "dwc": 0.0, "dlc": 0.0, "xw": 0.0, "xl": 0.0,
    "dlcig": 0.0, "dlcigd": 0.0, "dwj": 0.0, "vfbcv": -1.0, "acde": 1.0,
    "moin": 15.0, "noff": 1.0, "voffcv": 0.0, "cgso": 0.0, "cgdo": 0.0,
    "cgbo": 0.0, "xpart": 0.0,
    # Layout geometry and gate resistance
    "dmcg": 0.0, "dmci": 0.0, "dmdg": 0.0, "dmcgt": 0.0, "xgw": 0.0,
    "xgl": 0.0, "rshg": 0.1, "ngcon": 1.0, "rsh": 0.0,
    # Temperature coefficients of junction capacitance and potential
    "tcj": 0.0, "tpb": 0.0, "tcjsw": 0.0, "tpbsw": 0.0, "tcjswg": 0.0,
    "tpbswg": 0.0, "tnom": 27.0,
    # Source junction
    "jss": 1.0e-4, "jsws": 0.0, "jswgs": 0.0, "pbs": 1.0, "mjs": 0.5,
    "pbsws": 1.0, "mjsws": 0.33, "cjs": 5.0e-4, "cjsws": 5.0e-10,
    "njs": 1.0, "pbswgs": 0.0, "mjswgs": 0.0, "cjswgs": 0.0, "xtis": 3.0,
    # Drain junction
    "jsd": 0.0, "jswd": 0.0, "jswgd": 0.0, "pbd": 0.0, "mjd": 0.0,
    "pbswd": 0.0, "mjswd": 0.0, "cjd": 0.0, "cjswd": 0.0, "njd": 0.0,
    "pbswgd": 0.0, "mjswgd": 0.0, "cjswgd": 0.0, "xtid": 0.0,
    # Length and width offsets
    "lint": 0.0, "ll": 0.0, "llc": 0.0, "lln": 1.0, "lw": 0.0, "lwc": 0.0,
    "lwn": 1.0, "lwl": 0.0, "lwlc": 0.0, "lmin": 0.0, "lmax": 1.0,
    "wint": 0.0, "wl": 0.0, "wlc": 0.0, "wln": 1.0, "ww": 0.0, "wwc": 0.0,
    "wwn": 1.0, "wwl": 0.0, "wwlc": 0.0, "wmin": 0.0, "wmax": 1.0,
}

# Parameters with length (l), width (w) and cross-term (p) binning
# coefficients. Their binned value is P0 + Pl/Leff + Pw/Weff + Pp/(Leff*Weff).
BINNED_PARAMETERS: Tuple[str, ...] = (
    "cdsc", "cdscb", "cdscd", "cit", "nfactor", "xj", "vsat", "a0", "ags",
    "a1", "a2", "at", "keta", "nsub", "ndep", "nsd", "ngate", "gamma1",
    "gamma2", "vbx", "vbm", "xt", "k1", "kt1", "kt1l", "kt2", "k2", "k3",
    "k3b", "lpe0", "lpeb", "dvtp0", "dvtp1", "dvtp2", "dvtp3", "dvtp4",
    "dvtp5", "w0", "dvt0", "dvt1", "dvt2", "dvt0w", "dvt1w", "dvt2w",
    "drout", "dsub", "vth0", "ua", "ua1", "ub", "ub1", "uc", "uc1", "ud",
    "ud1", "up", "lp", "u0", "ute", "ucste", "voff", "tvoff", "tnfactor",
    "teta0", "tvoffcv", "minv", "minvcv", "fprout", "pdits", "pditsd",
    "delta", "rdsw", "rdw", "rsw", "prwb", "prwg", "prt", "eta0", "etab",
    "pclm", "pdibl1", "pdibl2", "pdiblb", "pscbe1", "pscbe2", "pvag", "wr",
    "dwg", "dwb", "b0", "b1", "alpha0", "alpha1", "beta0", "phin", "agidl",
    "bgidl", "cgidl", "egidl", "fgidl", "kgidl", "rgidl", "agisl", "bgisl",
    "cgisl", "egisl", "fgisl", "kgisl", "rgisl", "aigc", "bigc", "cigc",
    "aigsd", "bigsd", "cigsd", "aigs", "bigs", "cigs", "aigd", "bigd",
    "cigd", "aigbacc", "bigbacc", "cigbacc", "aigbinv", "bigbinv",
    "cigbinv", "nigc", "nigbinv", "nigbacc", "ntox", "eigbinv", "pigcd",
    "poxedge", "xrcrg1", "xrcrg2", "lambda_", "vtl", "xn", "vfbsdoff",
    "tvfbsdoff", "eu", "ucs", "vfb", "cgsl", "cgdl", "ckappas", "ckappad",
    "cf", "clc", "cle", "vfbcv", "acde", "moin", "noff", "voffcv",
)

# The mobility parameters ud, ud1, up, lp already have explicit entries
# for their binning coefficients in MODEL_DEFAULTS.
_EXPLICIT_BINS = {"ud", "ud1", "up", "lp"}


def binned_name(prefix: str, name: str) -> str:
    return prefix + name.rstrip("_")


def _build_model_defaults() -> Dict[str, float]:
    defaults = dict(MODEL_DEFAULTS)
    for name in BINNED_PARAMETERS:
        if name in _EXPLICIT_BINS:
            continue
        for prefix in ("l", "w", "p"):
            defaults.setdefault(binned_name(prefix, name), 0.0)
    return defaults


MODEL_ALIASES: Dict[str, str] = {
    "lambda": "lambda_", "vtho": "vth0", "pdiblc1": "pdibl1",
    "pdiblc2": "pdibl2", "pdiblcb": "pdiblb", "js": "jss", "jsw": "jsws",
    "jswg": "jswgs", "pb": "pbs", "mj": "mjs", "pbsw": "pbsws",
    "mjsw": "mjsws", "cj": "cjs", "cjsw": "cjsws", "nj": "njs",
    "pbswg": "pbswgs", "mjswg": "mjswgs", "cjswg": "cjswgs", "xti": "xtis",
}
for _prefix in ("l", "w", "p"):
    MODEL_ALIASES[_prefix + "vtho"] = _prefix + "vth0"
    MODEL_ALIASES[_prefix + "pdiblc1"] = _prefix + "pdibl1"
    MODEL_ALIASES[_prefix + "pdiblc2"] = _prefix + "pdibl2"
    MODEL_ALIASES[_prefix + "pdiblcb"] = _prefix + "pdiblb"

# Selectors are stored and compared as integers
MODEL_SELECTORS = frozenset({
    "mobmod", "binunit", "paramchk", "cvchargemod", "capmod", "diomod",
    "rdsmod", "trnqsmod", "acnqsmod", "rbodymod", "rgatemod", "permod",
    "geomod", "rgeomod", "fnoimod", "tnoimod", "mtrlmod", "mtrlcompatmod",
    "gidlmod", "igcmod", "igbmod", "tempmod", "wpemod",
})

NMOS = 1.0
PMOS = -1.0


class ParameterSet:
    """Name-keyed parameter values with explicit "given" flags."""

    DEFAULTS: Dict[str, float] = {}
    ALIASES: Dict[str, str] = {}
    SELECTORS: frozenset = frozenset()

    def __init__(self, **values: Any):
        object.__setattr__(self, "_values", dict(self.DEFAULTS))
        object.__setattr__(self, "_given", set())
        for name, value in values.items():
            self.set(name, value)

    def canonical(self, name: str) -> str:
        key = name.lower()
        key = self.ALIASES.get(key, key)
        if key not in self._values:
            raise KeyError(f"Unknown parameter '{name}' for {type(self).__name__}")
        return key

    def __getattr__(self, name: str) -> Any:
        try:
            return self.__dict__["_values"][name]
        except KeyError:
            raise AttributeError(name) from None

    def __setattr__(self, name: str, value: Any):
        raise AttributeError("Use set() or default() to change parameter values")

    def __getitem__(self, name: str) -> Any:
        return self._values[self.canonical(name)]

    def __contains__(self, name: str) -> bool:
        try:
            self.canonical(name)
        except KeyError:
            return False
        return True

    def _coerce(self, key: str, value: Any) -> Any:
        if key in self.SELECTORS:
            return int(value)
        return float(value)

    def set(self, name: str, value: Any):
        """Set a parameter value and mark it as given."""
        key = self.canonical(name)
        self._values[key] = self._coerce(key, value)
        self._given.add(key)

    def default(self, name: str, value: Any):
        """Fill in a value for a parameter that was not given."""
        key = self.canonical(name)
        if key not in self._given:
            self._values[key] = self._coerce(key, value)

    def reset(self, name: str, value: Any):
        """Overwrite a value (clamp or selector reset) keeping its given flag."""
        key = self.canonical(name)
        self._values[key] = self._coerce(key, value)

    def given(self, name: str) -> bool:
        return self.canonical(name) in self._given

    def update(self, values: Dict[str, Any]):
        for name, value in values.items():
            self.set(name, value)

    def copy(self):
        clone = type(self).__new__(type(self))
        object.__setattr__(clone, "_values", dict(self._values))
        object.__setattr__(clone, "_given", set(self._given))
        return clone

    def items(self) -> Iterable[Tuple[str, Any]]:
        return self._values.items()

    def given_names(self) -> frozenset:
        return frozenset(self._given)

    def __repr__(self) -> str:
        given = ", ".join(f"{k}={self._values[k]!r}" for k in sorted(self._given))
        return f"{type(self).__name__}({given})"


class ModelParameters(ParameterSet):
    """BSIM4 v4.8 model card.

    The device polarity is set with ``type="nmos"``/``"pmos"`` (or the
    flags ``nmos=True``/``pmos=True``) and read back as :attr:`polarity`.
    """

    DEFAULTS = _build_model_defaults()
    ALIASES = MODEL_ALIASES
    SELECTORS = MODEL_SELECTORS

    def __init__(self, type: str = "nmos", **values: Any):
        super().__init__()
        object.__setattr__(self, "polarity", NMOS)
        self.set_type(type)
        for flag in ("nmos", "pmos"):
            if values.pop(flag, False):
                self.set_type(flag)
        for name, value in values.items():
            self.set(name, value)

    def set_type(self, mos_type: str):
        mos_type = mos_type.lower()
        if mos_type in ("nmos", "n"):
            object.__setattr__(self, "polarity", NMOS)
        elif mos_type in ("pmos", "p"):
            object.__setattr__(self, "polarity", PMOS)
        else:
            raise ValueError(f"Unknown MOSFET type '{mos_type}', expected 'nmos' or 'pmos'")

    @property
    def is_nmos(self) -> bool:
        return self.polarity == NMOS

    def copy(self) -> "ModelParameters":
        clone = super().copy()
        object.__setattr__(clone, "polarity", self.polarity)
        return clone


INSTANCE_DEFAULTS: Dict[str, float] = {
    "w": 5.0e-6, "l": 5.0e-6, "nf": 1.0, "min": 0, "as_": 0.0, "ad": 0.0,
    "ps": 0.0, "pd": 0.0, "nrs": 1.0, "nrd": 1.0, "off": 0,
    "sa": 0.0, "sb": 0.0, "sd": 0.0, "sca": 0.0, "scb": 0.0, "scc": 0.0,
    "sc": 0.0, "rbsb": 0.0, "rbdb": 0.0, "rbpb": 0.0, "rbps": 0.0,
    "rbpd": 0.0, "delvto": 0.0, "xgw": 0.0, "ngcon": 0.0,
    "trnqsmod": 0, "acnqsmod": 0, "rbodymod": 0, "rgatemod": 0,
    "geomod": 0, "rgeomod": 0, "icvds": 0.0, "icvgs": 0.0, "icvbs": 0.0,
}


class InstanceParameters(ParameterSet):
    """Per-device geometry, layout and selector overrides."""

    DEFAULTS = INSTANCE_DEFAULTS
    ALIASES = {"as": "as_"}
    SELECTORS = frozenset({
        "min", "off", "trnqsmod", "acnqsmod", "rbodymod", "rgatemod",
        "geomod", "rgeomod",
    })

    def set_ic(self, *values: float):
        """Set initial conditions as (vds, vgs, vbs), trailing values optional."""
        if not 1 <= len(values) <= 3:
            raise ValueError("ic expects one to three values: vds, vgs, vbs")
        for name, value in zip(("icvds", "icvgs", "icvbs"), values):
            self.set(name, value)
