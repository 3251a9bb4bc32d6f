"""Parameter sanity checks run at the end of each device temperature pass.

Fatal violations are collected and raised together as one
FatalParameterError. Recoverable ones are reset to a safe value and
reported through the model diagnostics; with ``paramchk`` set, a wider
set of advisory checks runs as well.
"""

from bsim4jax.errors import FatalParameterError
from bsim4jax.logging import logger


class _Findings:
    """Fatal problems found by one check run."""

    def __init__(self):
        self.fatal = []

    def fail(self, message: str, parameter: str, value: float | None = None):
        self.fatal.append((message, parameter, value))

    def raise_if_fatal(self, device: str):
        if not self.fatal:
            return
        for message, _, _ in self.fatal:
            logger.error(f"{device}: Fatal: {message}")
        message, parameter, value = self.fatal[0]
        summary = "; ".join(m for m, _, _ in self.fatal)
        raise FatalParameterError(
            f"Fatal error(s) detected during BSIM4 parameter checking for {device}: {summary}",
            parameter,
            value,
        )


def _stress_active(instance) -> bool:
    nf = instance.nf
    return instance.sa > 0.0 and instance.sb > 0.0 and (
        nf == 1.0 or (nf > 1.0 and instance.sd > 0.0))


def check_model(model, mt, instance, it):
    """Check the derived parameters of one device.

    Args:
        model: A set-up Bsim4Model; clamps are written to its resolved card.
        mt: ModelTemperature at the circuit temperature.
        instance: InstanceParameters of the device (ngcon may be reset).
        it: InstanceTemperature whose size record may be clamped.

    Raises:
        FatalParameterError: At least one fatal violation was found.
    """
    p = model.params
    s = it.size
    warn = model.diagnostics.warn
    found = _Findings()

    if abs(p.version - 4.80) > 0.0001:
        warn("This model is BSIM4.8.0; you specified a wrong version number.", "version")
    if instance.rgatemod in (2, 3) and (instance.trnqsmod == 1 or instance.acnqsmod == 1):
        warn("You've selected both Rg and charge deficit NQS; select one only.", "rgatemod")

    for name, value in (("toxe", p.toxe), ("toxp", it.toxp), ("eot", p.eot)):
        if value <= 0.0:
            found.fail(f"{name.capitalize()} = {value:g} is not positive.", name, value)
    for name in ("epsrgate", "epsrsub", "easub"):
        value = getattr(p, name)
        if value < 0.0:
            found.fail(f"{name.capitalize()} = {value:g} is not positive.", name, value)
    for name in ("ni0sub", "toxm", "toxref"):
        value = getattr(p, name)
        if value <= 0.0:
            found.fail(f"{name.capitalize()} = {value:g} is not positive.", name, value)

    if s.lpe0 < -s.leff:
        found.fail(f"Lpe0 = {s.lpe0:g} is less than -Leff.", "lpe0", s.lpe0)
    if p.lintnoi > s.leff / 2.0:
        found.fail(f"Lintnoi = {p.lintnoi:g} is too large - Leff for noise is negative.",
                   "lintnoi", p.lintnoi)
    if s.lpeb < -s.leff:
        found.fail(f"Lpeb = {s.lpeb:g} is less than -Leff.", "lpeb", s.lpeb)
    if s.ndep <= 0.0:
        found.fail(f"Ndep = {s.ndep:g} is not positive.", "ndep", s.ndep)
    if s.phi <= 0.0:
        found.fail(f"Phi = {s.phi:g} is not positive. Please check Phin = {s.phin:g} "
                   f"and Ndep = {s.ndep:g}", "phi", s.phi)
    if s.nsub <= 0.0:
        found.fail(f"Nsub = {s.nsub:g} is not positive.", "nsub", s.nsub)
    if s.ngate < 0.0:
        found.fail(f"Ngate = {s.ngate:g} is not positive.", "ngate", s.ngate)
    if s.ngate > 1.0e25:
        found.fail(f"Ngate = {s.ngate:g} is too high", "ngate", s.ngate)
    if s.xj <= 0.0:
        found.fail(f"Xj = {s.xj:g} is not positive.", "xj", s.xj)
    for name in ("dvt1", "dvt1w"):
        value = getattr(s, name)
        if value < 0.0:
            found.fail(f"{name.capitalize()} = {value:g} is negative.", name, value)
    if s.w0 == -s.weff:
        found.fail("(W0 + Weff) = 0 causing divided-by-zero.", "w0", s.w0)
    if s.dsub < 0.0:
        found.fail(f"Dsub = {s.dsub:g} is negative.", "dsub", s.dsub)
    if s.b1 == -s.weff:
        found.fail("(B1 + Weff) = 0 causing divided-by-zero.", "b1", s.b1)
    if it.u0temp <= 0.0:
        found.fail(f"u0 at current temperature = {it.u0temp:g} is not positive.", "u0", it.u0temp)
    if s.delta < 0.0:
        found.fail(f"Delta = {s.delta:g} is less than zero.", "delta", s.delta)
    if it.vsattemp <= 0.0:
        found.fail(f"Vsat at current temperature = {it.vsattemp:g} is not positive.",
                   "vsat", it.vsattemp)
    if s.pclm <= 0.0:
        found.fail(f"Pclm = {s.pclm:g} is not positive.", "pclm", s.pclm)
    if s.drout < 0.0:
        found.fail(f"Drout = {s.drout:g} is negative.", "drout", s.drout)
    if instance.nf < 1.0:
        found.fail(f"Number of finger = {instance.nf:g} is smaller than one.", "nf", instance.nf)

    if _stress_active(instance):
        for name in ("saref", "sbref"):
            value = getattr(p, name)
            if value <= 0.0:
                found.fail(f"{name.upper()} = {value:g} is not positive.", name, value)

    if instance.l + p.xl <= p.xgl:
        found.fail("The parameter xgl must be smaller than Ldrawn+XL.", "xgl", p.xgl)
    if instance.ngcon < 1.0:
        found.fail("The parameter ngcon cannot be smaller than one.", "ngcon", instance.ngcon)
    if instance.ngcon not in (1.0, 2.0):
        instance.reset("ngcon", 1.0)
        warn("Ngcon must be equal to one or two; reset to 1.0.", "ngcon")

    if p.gbmin < 1.0e-20:
        warn(f"Gbmin = {p.gbmin:g} is too small.", "gbmin")

    # saturation
    if s.fprout < 0.0:
        found.fail(f"fprout = {s.fprout:g} is negative.", "fprout", s.fprout)
    if s.pdits < 0.0:
        found.fail(f"pdits = {s.pdits:g} is negative.", "pdits", s.pdits)
    if p.pditsl < 0.0:
        found.fail(f"pditsl = {p.pditsl:g} is negative.", "pditsl", p.pditsl)

    # gate current
    if p.igbmod > 0:
        for name in ("nigbinv", "nigbacc"):
            value = getattr(s, name)
            if value <= 0.0:
                found.fail(f"{name} = {value:g} is non-positive.", name, value)
    if p.igcmod > 0:
        for name in ("nigc", "poxedge", "pigcd"):
            value = getattr(s, name)
            if value <= 0.0:
                found.fail(f"{name} = {value:g} is non-positive.", name, value)

    if s.clc < 0.0:
        found.fail(f"Clc = {s.clc:g} is negative.", "clc", s.clc)

    for name in ("ckappas", "ckappad"):
        value = getattr(s, name)
        if value < 0.02:
            warn(f"{name} = {value:g} is too small.", name)
            setattr(s, name, 0.02)

    for name in ("vtss", "vtsd", "vtssws", "vtsswd", "vtsswgs", "vtsswgd"):
        value = getattr(p, name)
        if value < 0.0:
            found.fail(f"{name.capitalize()} = {value:g} is negative.", name, value)

    if p.paramchk == 1:
        _advisory_checks(model, mt, instance, it, found)

    found.raise_if_fatal(model.name)


def _advisory_checks(model, mt, instance, it, found):
    """Checks enabled by paramchk = 1: warnings, clamps and the rbody limits."""
    p = model.params
    s = it.size
    warn = model.diagnostics.warn

    if s.leff <= 1.0e-9:
        warn(f"Leff = {s.leff:g} <= 1.0e-9. Recommended Leff >= 1e-8", "leff")
    if s.leffCV <= 1.0e-9:
        warn(f"Leff for CV = {s.leffCV:g} <= 1.0e-9. Recommended LeffCV >= 1e-8", "leffcv")
    if s.weff <= 1.0e-9:
        warn(f"Weff = {s.weff:g} <= 1.0e-9. Recommended Weff >= 1e-7", "weff")
    if s.weffCV <= 1.0e-9:
        warn(f"Weff for CV = {s.weffCV:g} <= 1.0e-9. Recommended WeffCV >= 1e-7", "weffcv")

    # threshold voltage
    for name, value in (("toxe", p.toxe), ("toxp", it.toxp), ("toxm", p.toxm)):
        if value < 1.0e-10:
            warn(f"{name.capitalize()} = {value:g} is less than 1A. "
                 f"Recommended {name.capitalize()} >= 5A", name)
    if s.ndep <= 1.0e12:
        warn(f"Ndep = {s.ndep:g} may be too small.", "ndep")
    elif s.ndep >= 1.0e21:
        warn(f"Ndep = {s.ndep:g} may be too large.", "ndep")
    if s.nsub <= 1.0e14:
        warn(f"Nsub = {s.nsub:g} may be too small.", "nsub")
    elif s.nsub >= 1.0e21:
        warn(f"Nsub = {s.nsub:g} may be too large.", "nsub")
    if 0.0 < s.ngate <= 1.0e18:
        warn(f"Ngate = {s.ngate:g} is less than 1.E18cm^-3.", "ngate")
    if s.dvt0 < 0.0:
        warn(f"Dvt0 = {s.dvt0:g} is negative.", "dvt0")
    if abs(1.0e-8 / (s.w0 + s.weff)) > 10.0:
        warn("(W0 + Weff) may be too small.", "w0")

    # subthreshold
    for name in ("nfactor", "cdsc", "cdscd"):
        value = getattr(s, name)
        if value < 0.0:
            warn(f"{name.capitalize()} = {value:g} is negative.", name)
    if it.eta0 < 0.0:
        warn(f"Eta0 = {it.eta0:g} is negative.", "eta0")

    if abs(1.0e-8 / (s.b1 + s.weff)) > 10.0:
        warn("(B1 + Weff) may be too small.", "b1")

    # saturation
    if s.a2 < 0.01:
        warn(f"A2 = {s.a2:g} is too small. Set to 0.01.", "a2")
        s.a2 = 0.01
    elif s.a2 > 1.0:
        warn(f"A2 = {s.a2:g} is larger than 1. A2 is set to 1 and A1 is set to 0.", "a2")
        s.a2 = 1.0
        s.a1 = 0.0
    if s.prwg < 0.0:
        warn(f"Prwg = {s.prwg:g} is negative. Set to zero.", "prwg")
        s.prwg = 0.0
    if s.rdsw < 0.0:
        warn(f"Rdsw = {s.rdsw:g} is negative. Set to zero.", "rdsw")
        s.rdsw = 0.0
        s.rds0 = 0.0
    if s.rds0 < 0.0:
        warn(f"Rds at current temperature = {s.rds0:g} is negative. Set to zero.", "rds0")
        s.rds0 = 0.0
    if s.rdswmin < 0.0:
        warn(f"Rdswmin at current temperature = {s.rdswmin:g} is negative. Set to zero.",
             "rdswmin")
        s.rdswmin = 0.0
    if s.pscbe2 <= 0.0:
        warn(f"Pscbe2 = {s.pscbe2:g} is not positive.", "pscbe2")
    if it.vsattemp < 1.0e3:
        warn(f"Vsat at current temperature = {it.vsattemp:g} may be too small.", "vsat")
    if p.given("lambda_") and s.lambda_ > 1.0e-9:
        warn(f"Lambda = {s.lambda_:g} may be too large.", "lambda")
    if p.given("vtl") and s.vtl > 0.0:
        if s.vtl < 6.0e4:
            warn(f"Thermal velocity vtl = {s.vtl:g} may be too small.", "vtl")
        if s.xn < 3.0:
            warn(f"Back scattering coeff xn = {s.xn:g} is too small. Reset to 3.0", "xn")
            s.xn = 3.0
        if p.lc < 0.0:
            warn(f"Back scattering coeff lc = {p.lc:g} is too small. Reset to 0.0", "lc")
            s.lc = 0.0
    for name in ("pdibl1", "pdibl2"):
        value = getattr(s, name)
        if value < 0.0:
            warn(f"{name.capitalize()} = {value:g} is negative.", name)

    if _stress_active(instance):
        for name in ("lodk2", "lodeta0"):
            value = getattr(p, name)
            if value <= 0.0:
                warn(f"{name.upper()} = {value:g} is not positive.", name)

    # gate resistance
    if instance.rgatemod == 1 and p.rshg <= 0.0:
        warn("rshg should be positive for rgateMod = 1.", "rshg")
    elif instance.rgatemod in (2, 3):
        if p.rshg <= 0.0:
            warn(f"rshg should be positive for rgateMod = {instance.rgatemod}.", "rshg")
        elif s.xrcrg1 <= 0.0:
            warn(f"xrcrg1 should be positive for rgateMod = {instance.rgatemod}.", "xrcrg1")

    # body resistance
    for name in ("rbps0", "rbpd0", "rbpbx0", "rbpby0", "rbdbx0", "rbdby0", "rbsbx0", "rbsby0"):
        value = getattr(p, name)
        if value <= 0.0:
            found.fail(f"{name.upper()} = {value:g} is not positive.", name, value)

    # capacitance
    if s.noff < 0.1:
        warn(f"Noff = {s.noff:g} is too small.", "noff")
    if s.voffcv < -0.5:
        warn(f"Voffcv = {s.voffcv:g} is too small.", "voffcv")
    if s.moin < 5.0:
        warn(f"Moin = {s.moin:g} is too small.", "moin")
    if s.moin > 25.0:
        warn(f"Moin = {s.moin:g} is too large.", "moin")
    if p.capmod == 2:
        if s.acde < 0.1:
            warn(f"Acde = {s.acde:g} is too small.", "acde")
        if s.acde > 1.6:
            warn(f"Acde = {s.acde:g} is too large.", "acde")

    for name in ("cgdo", "cgso", "cgbo"):
        value = getattr(p, name)
        if value < 0.0:
            warn(f"{name} = {value:g} is negative. Set to zero.", name)
            p.reset(name, 0.0)

    # thermal noise coefficients; tnoimod is checked on its own
    noise = ()
    if p.tnoimod in (1, 2):
        noise += ("tnoia", "tnoib", "rnoia", "rnoib")
    if p.tnoimod == 2:
        noise += ("tnoic", "rnoic")
    for name in noise + ("ntnoi",):
        value = getattr(p, name)
        if value < 0.0:
            warn(f"{name} = {value:g} is negative. Set to zero.", name)
            p.reset(name, 0.0)

    for name, label in (("njs", "Njs"), ("njd", "Njd")):
        value = getattr(p, name)
        if value < 0.1:
            warn(f"{label} = {value:g} is less than 0.1. Setting {label} to 0.1.", name)
            p.reset(name, 0.1)
        elif value < 0.7:
            warn(f"{label} = {value:g} is less than 0.7.", name)

    temperature = mt.temp
    for attr, label, gate in (
        ("njts_temp", "Njts", None),
        ("njtssw_temp", "Njtssw", None),
        ("njtsswg_temp", "Njtsswg", None),
        ("njtsd_temp", "Njtsd", "njtsd"),
        ("njtsswd_temp", "Njtsswd", "njtsswd"),
        ("njtsswgd_temp", "Njtsswgd", "njtsswgd"),
    ):
        value = getattr(mt, attr)
        if (gate is None or p.given(gate)) and value < 0.0:
            warn(f"{label} = {value:g} is negative at temperature = {temperature:g}.",
                 label.lower())

    for name in ("mjs", "mjsws", "mjswgs", "mjd", "mjswd", "mjswgd"):
        value = getattr(p, name)
        if value >= 0.99:
            warn(f"{name.upper()} = {value:g} is too big. Set to 0.99.", name)
            p.reset(name, 0.99)

    if p.wpemod == 1 and p.scref <= 0.0:
        warn(f"SCREF = {p.scref:g} is not positive. Set to 1e-6.", "scref")
        p.reset("scref", 1.0e-6)
