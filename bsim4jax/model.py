"""BSIM4 model card: default resolution and model-level temperature data.

A Bsim4Model wraps one ModelParameters card. setup() resolves the dependent
defaults once; temperature() derives the quantities shared by all devices
using the card at a given circuit temperature.
"""

import math
from dataclasses import dataclass

from bsim4jax.cache import SizeParameterCache
from bsim4jax.config import (
    CELSIUS_TO_KELVIN,
    DEFAULT_TEMPERATURE_K,
    EPS0,
    EPSSI,
    KboQ,
    VCRIT,
)
from bsim4jax.logging import DiagnosticsSink, logger
from bsim4jax.parameters import NMOS, ModelParameters

# Legal values of each model selector and the value used when it is
# missing or illegal
SELECTOR_RANGES = {
    "mobmod": (range(0, 7), 0),
    "diomod": (range(0, 3), 1),
    "capmod": (range(0, 3), 2),
    "rdsmod": (range(0, 2), 0),
    "rbodymod": (range(0, 3), 0),
    "rgatemod": (range(0, 4), 0),
    "permod": (range(0, 2), 1),
    "fnoimod": (range(0, 2), 1),
    "tnoimod": (range(0, 3), 0),
    "trnqsmod": (range(0, 2), 0),
    "acnqsmod": (range(0, 2), 0),
    "mtrlmod": (range(0, 2), 0),
    "mtrlcompatmod": (range(0, 2), 0),
    "igcmod": (range(0, 3), 0),
    "igbmod": (range(0, 2), 0),
    "tempmod": (range(0, 4), 0),
    "wpemod": (range(0, 2), 0),
}

# Drain-side parameters that default to their source-side counterpart,
# resolved in order (gate sidewall values chain through the sidewall ones)
DRAIN_FROM_SOURCE = (
    ("cjd", "cjs"),
    ("cjswd", "cjsws"),
    ("cjswgs", "cjsws"),
    ("cjswgd", "cjswgs"),
    ("jsd", "jss"),
    ("jswd", "jsws"),
    ("jswgd", "jswgs"),
    ("pbd", "pbs"),
    ("pbswd", "pbsws"),
    ("pbswgs", "pbsws"),
    ("pbswgd", "pbswgs"),
    ("mjd", "mjs"),
    ("mjswd", "mjsws"),
    ("mjswgs", "mjsws"),
    ("mjswgd", "mjswgs"),
    ("njd", "njs"),
    ("xtid", "xtis"),
    ("jtsd", "jtss"),
    ("jtsswd", "jtssws"),
    ("jtsswgd", "jtsswgs"),
    ("xtsd", "xtss"),
    ("xtsswd", "xtssws"),
    ("xtsswgd", "xtsswgs"),
    ("vtsd", "vtss"),
    ("vtsswd", "vtssws"),
    ("vtsswgd", "vtsswgs"),
)

GISL_FROM_GIDL = ("agisl", "bgisl", "cgisl", "egisl", "rgisl", "kgisl", "fgisl")


@dataclass
class ModelTemperature:
    """Model-level quantities at one circuit temperature."""

    temp: float
    tnom: float
    t_ratio: float
    del_temp: float
    epsrox: float
    toxe: float
    epssub: float
    coxe: float
    coxp: float
    factor1: float
    vtm0: float
    vtm: float
    eg0: float
    eg: float
    ni: float
    vcrit: float
    # junction saturation current densities at T
    js_temp: float
    jsws_temp: float
    jswgs_temp: float
    jd_temp: float
    jswd_temp: float
    jswgd_temp: float
    # junction capacitances at T
    cjs_temp: float
    cjd_temp: float
    cjsws_temp: float
    cjswd_temp: float
    cjswgs_temp: float
    cjswgd_temp: float
    # built-in potentials at T
    phi_bs: float
    phi_bd: float
    phi_bsws: float
    phi_bswd: float
    phi_bswgs: float
    phi_bswgd: float
    # trap-assisted tunneling ideality at T
    njts_temp: float
    njtssw_temp: float
    njtsswg_temp: float
    njtsd_temp: float
    njtsswd_temp: float
    njtsswgd_temp: float


class Bsim4Model:
    """A BSIM4 v4.8 model card shared by any number of devices.

    Args:
        params: Model card. Keyword values are applied on top of it, so a
            model can be built from keywords alone:
            ``Bsim4Model(type="pmos", toxe=1.8e-9, vth0=-0.4)``.
        name: Name used when reporting warnings.
    """

    def __init__(self, params: ModelParameters | None = None, name: str = "bsim4", **values):
        if params is None:
            params = ModelParameters(**values)
        else:
            params = params.copy()
            params.update(values)
        self.card = params
        self.name = name
        self.params = params.copy()
        self.diagnostics = DiagnosticsSink(name)
        self.sizes = SizeParameterCache()
        self.dmcg_eff = 0.0
        self.dmci_eff = 0.0
        self.dmdg_eff = 0.0
        self.is_setup = False
        self._temperature = None

    @property
    def polarity(self) -> float:
        return self.params.polarity

    def setup(self, nominal_temperature: float = DEFAULT_TEMPERATURE_K) -> "Bsim4Model":
        """Resolve selector values and dependent defaults.

        Starts again from the user card, so repeated calls are idempotent.
        Clears the size-dependent parameter cache.
        """
        self.sizes.clear()
        self._temperature = None
        p = self.card.copy()
        nmos = p.polarity == NMOS

        for name, (legal, fallback) in SELECTOR_RANGES.items():
            if not p.given(name):
                p.reset(name, fallback)
            elif getattr(p, name) not in legal:
                p.reset(name, fallback)
                self.diagnostics.warn(
                    f"{name} has been set to its default value: {fallback}", name
                )

        p.default("vddeot", 1.5 if nmos else -1.5)
        p.default("toxp", p.toxe)
        p.default("toxm", p.toxe)
        p.default("dsub", p.drout)
        p.default("eu", 1.67 if nmos else 1.0)
        p.default("ucs", 1.67 if nmos else 1.0)
        p.default("ua", 1.0e-15 if p.mobmod == 2 else 1.0e-9)
        p.default("uc", -0.0465 if p.mobmod == 1 else -0.0465e-9)
        p.default("uc1", -0.056 if p.mobmod == 1 else -0.056e-9)
        p.default("u0", 0.067 if nmos else 0.025)

        p.default("rgidl", 1.0)
        p.default("kgidl", 0.0)
        p.default("fgidl", 1.0)
        for prefix in ("", "l", "w", "p"):
            for gisl in GISL_FROM_GIDL:
                gidl = gisl.replace("isl", "idl")
                p.default(prefix + gisl, getattr(p, prefix + gidl))

        p.default("aigc", 1.36e-2 if nmos else 9.80e-3)
        p.default("bigc", 1.71e-3 if nmos else 7.59e-4)
        p.default("cigc", 0.075 if nmos else 0.03)
        tunneling_defaults = {
            "a": 1.36e-2 if nmos else 9.80e-3,
            "b": 1.71e-3 if nmos else 7.59e-4,
            "c": 0.075 if nmos else 0.03,
        }
        for letter, fallback in tunneling_defaults.items():
            sd_name = f"{letter}igsd"
            s_name, d_name = f"{letter}igs", f"{letter}igd"
            sd_given = p.given(sd_name)
            if sd_given:
                p.reset(s_name, getattr(p, sd_name))
                p.reset(d_name, getattr(p, sd_name))
            else:
                p.reset(sd_name, fallback)
                p.default(s_name, fallback)
                p.default(d_name, fallback)
            # The binning terms follow igsd unless only the split values were given
            if sd_given or not (p.given(s_name) or p.given(d_name)):
                for prefix in ("l", "w", "p"):
                    p.reset(prefix + s_name, getattr(p, prefix + sd_name))
                    p.reset(prefix + d_name, getattr(p, prefix + sd_name))

        p.default("ijthdfwd", p.ijthsfwd)
        p.default("ijthdrev", p.ijthsrev)
        p.default("xjbvd", p.xjbvs)
        p.default("bvd", p.bvs)
        p.default("ckappad", p.ckappas)
        p.default("dmci", p.dmcg)
        if not p.given("lk1"):
            p.reset("lkt1", 0.0)

        if not p.given("tnom"):
            p.reset("tnom", nominal_temperature - CELSIUS_TO_KELVIN)
        p.default("llc", p.ll)
        p.default("lwc", p.lw)
        p.default("lwlc", p.lwl)
        p.default("wlc", p.wl)
        p.default("wwc", p.ww)
        p.default("wwlc", p.wwl)
        p.default("dwc", p.wint)
        p.default("dlc", p.lint)
        p.default("dlcig", p.lint)
        p.default("dlcigd", p.dlcig if p.given("dlcig") else p.lint)
        p.default("dwj", p.dwc)
        p.default("cf", 2.0 * p.epsrox * EPS0 / math.pi * math.log(1.0 + 0.4e-6 / p.toxe))

        for drain, source in DRAIN_FROM_SOURCE:
            p.default(drain, getattr(p, source))
        for suffix in ("", "sw", "swg"):
            source = f"njts{suffix}"
            p.default(source + "d", getattr(p, source) if p.given(source) else 20.0)
            p.default("t" + source + "d", getattr(p, "t" + source) if p.given("t" + source) else 0.0)

        p.default("noia", 6.25e41 if nmos else 6.188e40)
        p.default("noib", 3.125e26 if nmos else 1.5e25)

        self.params = p
        self.dmcg_eff = p.dmcg - p.dmcgt
        self.dmci_eff = p.dmci
        self.dmdg_eff = p.dmdg - p.dmcgt
        self.is_setup = True
        logger.debug(f"{self.name}: model setup complete ({'nmos' if nmos else 'pmos'})")
        return self

    def temperature(self, temp: float = DEFAULT_TEMPERATURE_K) -> ModelTemperature:
        """Derive the model-level temperature data at ``temp`` (Kelvin).

        Junction potentials, oxide thickness and the ijth/xjbv/bv values are
        corrected in place on the resolved card, with a warning, exactly once
        per setup.
        """
        if not self.is_setup:
            self.setup()
        cached = self._temperature
        if cached is not None and cached.temp == temp:
            return cached
        # size records hold temperature-scaled values
        self.sizes.clear()

        p = self.params
        warn = self.diagnostics.warn

        for name in ("pbs", "pbsws", "pbswgs", "pbd", "pbswd", "pbswgd"):
            if getattr(p, name) < 0.1:
                p.reset(name, 0.1)
                warn(f"Given {name} is less than 0.1. {name.capitalize()} is set to 0.1.", name)

        if p.mtrlmod == 0:
            if (p.given("toxe") and p.given("toxp") and p.given("dtox")
                    and p.toxe != p.toxp + p.dtox):
                warn("toxe, toxp and dtox all given and toxe != toxp + dtox; dtox ignored.", "dtox")
            elif p.given("toxe") and not p.given("toxp"):
                p.reset("toxp", p.toxe - p.dtox)
            elif not p.given("toxe") and p.given("toxp"):
                p.reset("toxe", p.toxp + p.dtox)
                if not p.given("toxm"):
                    p.reset("toxm", p.toxe)
        elif p.mtrlcompatmod != 0:
            t0 = p.epsrox / 3.9
            if (p.given("eot") and p.given("toxp") and p.given("dtox")
                    and abs(p.eot * t0 - (p.toxp + p.dtox)) > 1.0e-20):
                warn("eot, toxp and dtox all given and eot * EPSROX / 3.9 != toxp + dtox; "
                     "dtox ignored.", "dtox")
            elif p.given("eot") and not p.given("toxp"):
                p.reset("toxp", t0 * p.eot - p.dtox)
            elif not p.given("eot") and p.given("toxp"):
                p.reset("eot", (p.toxp + p.dtox) / t0)
                if not p.given("toxm"):
                    p.reset("toxm", p.eot)

        if p.mtrlmod != 0:
            epsrox = 3.9
            toxe = p.eot
            epssub = EPS0 * p.epsrsub
        else:
            epsrox = p.epsrox
            toxe = p.toxe
            epssub = EPSSI

        coxe = epsrox * EPS0 / toxe
        coxp = p.epsrox * EPS0 / p.toxp if (p.mtrlmod == 0 or p.mtrlcompatmod != 0) else 0.0

        if p.given("dlc") and p.dlc > 0.0:
            p.default("cgdo", p.dlc * coxe - p.cgdl)
            p.default("cgso", p.dlc * coxe - p.cgsl)
        else:
            p.default("cgdo", 0.6 * p.xj * coxe)
            p.default("cgso", 0.6 * p.xj * coxe)
        p.default("cgbo", 2.0 * p.dwc * coxe)

        tnom = p.tnom + CELSIUS_TO_KELVIN
        t_ratio = temp / tnom
        factor1 = math.sqrt(epssub / (epsrox * EPS0) * toxe)
        vtm0 = KboQ * tnom

        if p.mtrlmod == 0:
            eg0 = 1.16 - 7.02e-4 * tnom * tnom / (tnom + 1108.0)
            ni = (1.45e10 * (tnom / 300.15) * math.sqrt(tnom / 300.15)
                  * math.exp(21.5565981 - eg0 / (2.0 * vtm0)))
            eg = 1.16 - 7.02e-4 * temp * temp / (temp + 1108.0)
        else:
            eg0 = p.bg0sub - p.tbgasub * tnom * tnom / (tnom + p.tbgbsub)
            t0 = p.bg0sub - p.tbgasub * 90090.0225 / (300.15 + p.tbgbsub)
            ni = (p.ni0sub * (tnom / 300.15) * math.sqrt(tnom / 300.15)
                  * math.exp((t0 - eg0) / (2.0 * vtm0)))
            eg = p.bg0sub - p.tbgasub * temp * temp / (temp + p.tbgbsub)
        vtm = KboQ * temp

        if temp != tnom:
            t0 = eg0 / vtm0 - eg / vtm
            t1 = math.log(temp / tnom)
            s_scale = math.exp((t0 + p.xtis * t1) / p.njs)
            d_scale = math.exp((t0 + p.xtid * t1) / p.njd)
        else:
            s_scale = d_scale = 1.0
        js_temp = max(p.jss * s_scale, 0.0)
        jsws_temp = max(p.jsws * s_scale, 0.0)
        jswgs_temp = max(p.jswgs * s_scale, 0.0)
        jd_temp = max(p.jsd * d_scale, 0.0)
        jswd_temp = max(p.jswd * d_scale, 0.0)
        jswgd_temp = max(p.jswgd * d_scale, 0.0)

        del_temp = temp - tnom

        cjs_temp, cjd_temp = self._scale_capacitance(
            p.tcj * del_temp, ("cjs", p.cjs), ("cjd", p.cjd))
        for name in ("cjsws", "cjswd"):
            if getattr(p, name) < 0.0:
                p.reset(name, 0.0)
                warn(f"{name.upper()} is negative. {name.capitalize()} is clamped to zero.", name)
        cjsws_temp, cjswd_temp = self._scale_capacitance(
            p.tcjsw * del_temp, ("cjsws", p.cjsws), ("cjswd", p.cjswd))
        cjswgs_temp, cjswgd_temp = self._scale_capacitance(
            p.tcjswg * del_temp, ("cjswgs", p.cjswgs), ("cjswgd", p.cjswgd))

        phi_bs = self._potential("pbs", p.pbs - p.tpb * del_temp, inclusive=False)
        phi_bd = self._potential("pbd", p.pbd - p.tpb * del_temp, inclusive=False)
        phi_bsws = self._potential("pbsws", p.pbsws - p.tpbsw * del_temp)
        phi_bswd = self._potential("pbswd", p.pbswd - p.tpbsw * del_temp)
        phi_bswgs = self._potential("pbswgs", p.pbswgs - p.tpbswg * del_temp)
        phi_bswgd = self._potential("pbswgd", p.pbswgd - p.tpbswg * del_temp)

        for name in ("ijthdfwd", "ijthsfwd", "ijthdrev", "ijthsrev"):
            if getattr(p, name) <= 0.0:
                p.reset(name, 0.0)
                warn(f"{name.capitalize()} reset to 0.", name)
        for name in ("xjbvd", "xjbvs"):
            value = getattr(p, name)
            if (value <= 0.0 and p.diomod == 2) or (value < 0.0 and p.diomod == 0):
                p.reset(name, 0.0)
                warn(f"{name.capitalize()} reset to 0.", name)
        for name in ("bvd", "bvs"):
            if getattr(p, name) <= 0.0:
                p.reset(name, 0.0)
                warn(f"{name.upper()} reset to 0.", name)

        t0 = t_ratio - 1.0
        result = ModelTemperature(
            temp=temp,
            tnom=tnom,
            t_ratio=t_ratio,
            del_temp=del_temp,
            epsrox=epsrox,
            toxe=toxe,
            epssub=epssub,
            coxe=coxe,
            coxp=coxp,
            factor1=factor1,
            vtm0=vtm0,
            vtm=vtm,
            eg0=eg0,
            eg=eg,
            ni=ni,
            vcrit=VCRIT,
            js_temp=js_temp,
            jsws_temp=jsws_temp,
            jswgs_temp=jswgs_temp,
            jd_temp=jd_temp,
            jswd_temp=jswd_temp,
            jswgd_temp=jswgd_temp,
            cjs_temp=cjs_temp,
            cjd_temp=cjd_temp,
            cjsws_temp=cjsws_temp,
            cjswd_temp=cjswd_temp,
            cjswgs_temp=cjswgs_temp,
            cjswgd_temp=cjswgd_temp,
            phi_bs=phi_bs,
            phi_bd=phi_bd,
            phi_bsws=phi_bsws,
            phi_bswd=phi_bswd,
            phi_bswgs=phi_bswgs,
            phi_bswgd=phi_bswgd,
            njts_temp=p.njts * (1.0 + p.tnjts * t0),
            njtssw_temp=p.njtssw * (1.0 + p.tnjtssw * t0),
            njtsswg_temp=p.njtsswg * (1.0 + p.tnjtsswg * t0),
            njtsd_temp=p.njtsd * (1.0 + p.tnjtsd * t0),
            njtsswd_temp=p.njtsswd * (1.0 + p.tnjtsswd * t0),
            njtsswgd_temp=p.njtsswgd * (1.0 + p.tnjtsswgd * t0),
        )
        self._temperature = result
        logger.debug(f"{self.name}: model temperature data at {temp:g} K")
        return result

    @property
    def current_temperature(self) -> ModelTemperature | None:
        """Temperature data from the last temperature() call, if any."""
        return self._temperature

    def _scale_capacitance(self, t0: float, *caps):
        """Apply the linear temperature coefficient to (name, value) pairs."""
        scaled = []
        for name, value in caps:
            if t0 >= -1.0:
                scaled.append(value * (1.0 + t0))
            else:
                if value > 0.0:
                    self.diagnostics.warn(
                        f"Temperature effect has caused {name} to be negative. "
                        f"{name.capitalize()} is clamped to zero.", name)
                scaled.append(0.0)
        return scaled

    def _potential(self, name: str, value: float, inclusive: bool = True) -> float:
        """Clamp a built-in potential at 0.01 V."""
        if value < 0.01 or (inclusive and value == 0.01):
            self.diagnostics.warn(
                f"Temperature effect has caused {name} to be less than 0.01. "
                f"{name.capitalize()} is clamped to 0.01.", name)
            return 0.01
        return value

    def __repr__(self) -> str:
        return f"Bsim4Model({self.name!r}, {'nmos' if self.polarity == NMOS else 'pmos'})"
