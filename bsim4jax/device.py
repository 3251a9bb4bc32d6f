"""One BSIM4 device instance as seen by a host circuit simulator.

A device ties an instance card to a shared Bsim4Model and owns everything
that is per-instance: the resolved selectors, the internal nodes, the
temperature-derived values and the iteration history.

Typical host sequence:

    model = Bsim4Model(type="nmos").setup()
    dev = Bsim4Device("m1", model, w=1e-6, l=100e-9)
    dev.setup({"d": 1, "g": 2, "s": 0, "b": 0}, allocate=next_node)
    dev.temperature(300.15)
    result = dev.load_dc(context)
    accumulator.add_stamps(result.stamps)
"""

import itertools
from typing import Callable, Dict, Mapping, NamedTuple, Optional, Sequence, Union

from bsim4jax.cache import size_key
from bsim4jax.config import DEFAULT_TEMPERATURE_K, VT0
from bsim4jax.context import InitMode, SimulationContext
from bsim4jax.evaluator import COLUMN_NODES, NODES, Evaluation, evaluate
from bsim4jax.geometry import DRAIN, SOURCE, series_resistance
from bsim4jax.integration import Integrator
from bsim4jax.limiting import limit_voltages
from bsim4jax.logging import logger
from bsim4jax.parameters import InstanceParameters
from bsim4jax.stamp import Network, Stamps, stamp_ac, stamp_dc
from bsim4jax.state import CHARGE_SLOTS, BranchVoltages, DeviceState
from bsim4jax.temperature import derive_instance_temperature, derive_size_parameters

EXTERNAL_NODES = ("d", "g", "s", "b")

# Instance values that fall back to the model card when not given
MODEL_FALLBACKS = ("rbdb", "rbsb", "rbpb", "rbps", "rbpd", "xgw", "ngcon", "geomod")

# Legal values of each instance selector; illegal ones take the model value
INSTANCE_SELECTORS = {
    "trnqsmod": range(0, 2),
    "acnqsmod": range(0, 2),
    "rbodymod": range(0, 3),
    "rgatemod": range(0, 4),
}

_COLUMN = {name: i for i, name in enumerate(COLUMN_NODES)}
_CHARGE_ROW = {name: i for i, name in enumerate(CHARGE_SLOTS)}
_TERMINALS = ("g", "d", "s", "b")


class LoadResult(NamedTuple):
    """Outcome of one DC/transient load.

    Attributes:
        converged: False when junction limiting changed a branch voltage
        stamps: Matrix and right-hand-side contributions
        outputs: Operating-point values at the evaluated voltages
    """

    converged: bool
    stamps: Stamps
    outputs: Dict[str, float]


class Bsim4Device:
    """A BSIM4 MOSFET instance.

    Args:
        name: Instance name used in log messages
        model: Shared Bsim4Model
        instance: Instance card; keyword values are applied on top of it
    """

    def __init__(self, name: str, model, instance: Optional[InstanceParameters] = None, **values):
        if instance is None:
            instance = InstanceParameters(**values)
        else:
            instance = instance.copy()
            instance.update(values)
        self.name = name
        self.model = model
        self.card = instance
        self.instance = None
        self.node_ids: Dict[str, int] = {}
        self.state = DeviceState()
        self.temps = None
        self.network: Optional[Network] = None
        self._von = 0.0
        self._last = None

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def resolve_instance(self) -> InstanceParameters:
        """Fill unsupplied instance values from the model and check selectors."""
        model = self.model
        if not model.is_setup:
            model.setup()
        p = model.params
        inst = self.card.copy()
        warn = model.diagnostics.warn

        for name in MODEL_FALLBACKS:
            inst.default(name, getattr(p, name))
        inst.default("sd", 2.0 * p.dmcg)

        for name, legal in INSTANCE_SELECTORS.items():
            if not inst.given(name):
                inst.reset(name, getattr(p, name))
            elif getattr(inst, name) not in legal:
                warn(f"{self.name}: {name} = {getattr(inst, name)} is not valid, "
                     f"using the model value {getattr(p, name)}.", name)
                inst.reset(name, getattr(p, name))

        if inst.trnqsmod == 1 and inst.acnqsmod == 1:
            warn(f"{self.name}: acnqsmod is overridden by trnqsmod and set to 0.", "acnqsmod")
            inst.reset("acnqsmod", 0)

        self.instance = inst
        return inst

    def _needs_series_node(self, inst, squares: str, terminal: int) -> bool:
        p = self.model.params
        if p.rdsmod != 0 or p.tnoimod == 1:
            return True
        if p.rsh <= 0.0:
            return False
        if inst.given(squares):
            return getattr(inst, squares) > 0.0
        if inst.rgeomod == 0:
            return False
        model = self.model
        resistance = series_resistance(
            inst.nf, inst.geomod, inst.rgeomod, inst.min, inst.w, p.rsh,
            model.dmcg_eff, model.dmci_eff, model.dmdg_eff, terminal)
        return resistance > 0.0

    def setup(self, nodes: Union[Sequence[int], Mapping[str, int]],
              allocate: Optional[Callable[[str], int]] = None) -> Dict[str, int]:
        """Resolve the instance and create the internal nodes it needs.

        Args:
            nodes: Host ids of the external nodes, either as a (d, g, s, b)
                sequence or as a mapping with those keys
            allocate: Called with a label for every internal node that is
                created and returns its host id. Without it new ids are
                numbered after the largest external id.

        Returns:
            Host id of every device node; collapsed nodes share the id of
            the node they alias
        """
        if isinstance(nodes, Mapping):
            external = {name: int(nodes[name]) for name in EXTERNAL_NODES}
        else:
            if len(nodes) != 4:
                raise ValueError(f"{self.name}: expected 4 external nodes (d, g, s, b), got {len(nodes)}")
            external = dict(zip(EXTERNAL_NODES, (int(n) for n in nodes)))
        if allocate is None:
            counter = itertools.count(max(external.values()) + 1)

            def allocate(label):
                return next(counter)

        inst = self.resolve_instance()
        ids = dict(external)

        def create(name: str, alias: str, needed: bool):
            if needed:
                ids[name] = allocate(f"{self.name}#{name}")
                logger.debug(f"{self.name}: created internal node {name} -> {ids[name]}")
            else:
                ids[name] = ids[alias]

        create("dp", "d", self._needs_series_node(inst, "nrd", DRAIN))
        create("sp", "s", self._needs_series_node(inst, "nrs", SOURCE))
        create("gp", "g", inst.rgatemod > 0)
        create("gm", "g", inst.rgatemod == 3)
        body = inst.rbodymod in (1, 2)
        create("db", "b", body)
        create("bp", "b", body)
        create("sb", "b", body)
        if inst.trnqsmod != 0:
            create("q", "q", True)
        else:
            ids["q"] = 0

        self.node_ids = ids
        self.state.reset()
        self.temps = None
        self.network = None
        return dict(ids)

    def temperature(self, temp: float = DEFAULT_TEMPERATURE_K):
        """Derive the temperature- and size-dependent values at ``temp`` (K).

        Returns:
            The InstanceTemperature record of the device
        """
        if self.instance is None:
            raise RuntimeError(f"{self.name}: setup() must run before temperature()")
        model = self.model
        inst = self.instance
        mt = model.temperature(temp)
        key = size_key(inst.w, inst.l, inst.nf)
        base = model.sizes.get(key, lambda: derive_size_parameters(model, inst, mt))
        ids = self.node_ids
        self.temps = derive_instance_temperature(
            model, inst, mt, base,
            source_separate=ids["sp"] != ids["s"],
            drain_separate=ids["dp"] != ids["d"],
        )
        self.network = self._network()
        self._last = None
        return self.temps

    def _network(self) -> Network:
        p = self.model.params
        inst = self.instance
        it = self.temps
        linear = []
        if p.rdsmod == 0:
            linear.append(("d", "dp", it.drain_conductance))
            linear.append(("s", "sp", it.source_conductance))
        if inst.rgatemod == 1:
            linear.append(("g", "gp", it.grgeltd))
        elif inst.rgatemod == 3:
            linear.append(("g", "gm", it.grgeltd))
        if inst.rbodymod != 0:
            linear.extend((
                ("bp", "db", it.grbpd),
                ("bp", "sb", it.grbps),
                ("bp", "b", it.grbpb),
                ("db", "b", it.grbdb),
                ("sb", "b", it.grbsb),
            ))
        return Network(
            node_ids=self.node_ids,
            polarity=p.polarity,
            linear=tuple(linear),
            acnqs=inst.acnqsmod == 1,
        )

    def _require_ready(self):
        if self.network is None:
            raise RuntimeError(f"{self.name}: temperature() must run before loading")

    # ------------------------------------------------------------------
    # Voltage selection
    # ------------------------------------------------------------------

    def _predict(self, context: SimulationContext) -> BranchVoltages:
        """Type-normalized branch voltages from the host solution."""
        ids = self.node_ids
        polarity = self.model.polarity
        v = {name: context.voltage(ids[name]) for name in NODES}
        sp = v["sp"]
        return BranchVoltages(
            vds=polarity * (v["dp"] - sp),
            vgs=polarity * (v["gp"] - sp),
            vbs=polarity * (v["bp"] - sp),
            vges=polarity * (v["g"] - sp),
            vgms=polarity * (v["gm"] - sp),
            vdbs=polarity * (v["db"] - sp),
            vsbs=polarity * (v["sb"] - sp),
            vses=polarity * (v["s"] - sp),
            vdes=polarity * (v["d"] - sp),
            qdef=polarity * v["q"],
        )

    def _junction_guess(self, context: SimulationContext) -> BranchVoltages:
        """Starting point of the first iteration: the ic values or a default bias."""
        inst = self.instance
        polarity = self.model.polarity
        vds = polarity * inst.icvds
        vgs = polarity * inst.icvgs
        vbs = polarity * inst.icvbs
        if vds > 0.0:
            vdes, vses = vds + 0.01, -0.01
        elif vds < 0.0:
            vdes, vses = vds - 0.01, 0.01
        else:
            vdes = vses = 0.0
        if vds == 0.0 and vgs == 0.0 and vbs == 0.0 and not context.uic:
            vgs = polarity * self.temps.vth0 + 0.1
            return BranchVoltages(vds=0.1, vgs=vgs, vbs=0.0, vges=vgs, vgms=vgs,
                                  vdbs=0.0, vsbs=0.0, vses=-0.01, vdes=0.11)
        return BranchVoltages(vds=vds, vgs=vgs, vbs=vbs, vges=vgs, vgms=vgs,
                              vdbs=vbs, vsbs=vbs, vses=vses, vdes=vdes)

    def _select_voltages(self, context: SimulationContext):
        """Voltages to evaluate at and whether the limiter changed them."""
        mode = context.mode
        off = self.instance.off != 0
        if context.use_small_signal or mode is InitMode.SMSIG:
            return self.state.voltages(0), False
        if mode is InitMode.TRAN:
            return self.state.voltages(1), False
        if mode is InitMode.JCT and not off:
            return self._junction_guess(context), False
        if mode in (InitMode.JCT, InitMode.FIX) and off:
            return BranchVoltages(), False

        inst = self.instance
        mt = self.model.current_temperature
        voltages, limited = limit_voltages(
            self._predict(context), self.state[0], self._von, mt.vcrit,
            inst.rgatemod, inst.rbodymod, self.model.params.rdsmod, VT0)
        return voltages, limited

    # ------------------------------------------------------------------
    # Loads
    # ------------------------------------------------------------------

    def _evaluate(self, voltages: BranchVoltages, gmin: float, charges: bool):
        evaluation, jacobians = evaluate(
            self.model, self.instance, self.temps.size, self.temps, voltages,
            gmin=gmin, charges=charges)
        self._last = (evaluation, jacobians)
        self._von = evaluation.extras["von"]
        return evaluation, jacobians

    def _store(self, evaluation: Evaluation):
        state = self.state
        state.store_voltages(evaluation.voltages)
        if not evaluation.charges_computed:
            return
        now = state[0]
        for name in CHARGE_SLOTS:
            setattr(now, name, evaluation.charges[_CHARGE_ROW[name]])
        now.qs = evaluation.extras["qs"]

    def load_dc(self, context: SimulationContext, integrator: Optional[Integrator] = None) -> LoadResult:
        """Evaluate the device at the host's current iterate and stamp it.

        Args:
            context: Solution vector and iteration flags
            integrator: Charge integrator of a transient step; None for DC

        Returns:
            LoadResult with the convergence flag, the stamps and the
            operating-point values
        """
        self._require_ready()
        voltages, limited = self._select_voltages(context)
        charges = context.charges_needed or integrator is not None
        evaluation, jacobians = self._evaluate(voltages, context.gmin, charges)
        self._store(evaluation)

        converged = not limited
        if limited and context.mode is InitMode.FIX and self.instance.off:
            converged = True
        if limited:
            logger.debug(f"{self.name}: limited step at vds={voltages.vds:g} vgs={voltages.vgs:g}")

        if context.mode is InitMode.SMSIG:
            return LoadResult(converged, Stamps(matrix={}, rhs={}), self.operating_point())

        transient = integrator is not None and evaluation.charges_computed
        if transient:
            slots = evaluation.active_slots
            first_step = context.mode is InitMode.TRAN
            if first_step:
                self.state.copy_forward(slots)
            for name in slots:
                integrator.integrate(self.state, name, "c" + name)
            if first_step:
                self.state.copy_forward(["c" + name for name in slots])

        stamps = stamp_dc(evaluation, jacobians, self.state,
                          integrator if transient else None, self.network)
        return LoadResult(converged, stamps, self.operating_point())

    def load_ac(self, context: SimulationContext, omega: float) -> Stamps:
        """Small-signal admittance at the stored operating point.

        Args:
            context: Provides gmin
            omega: Angular frequency in rad/s
        """
        self._require_ready()
        evaluation, jacobians = self._evaluate(self.state.voltages(0), context.gmin, True)
        return stamp_ac(evaluation, jacobians, omega, self.network)

    def accept(self):
        """Make the current iteration the accepted timepoint."""
        self.state.accept()

    # ------------------------------------------------------------------
    # Operating point
    # ------------------------------------------------------------------

    def operating_point(self) -> Dict[str, float]:
        """Named operating-point values of the last evaluation.

        Currents and charges are physical (polarity applied). Capacitances
        ``cxyb`` are dQx/dVy of the intrinsic charges.
        """
        if self._last is None:
            raise RuntimeError(f"{self.name}: no evaluation to report")
        evaluation, jacobians = self._last
        polarity = self.model.polarity
        x = evaluation.extras
        v = evaluation.voltages
        it = self.temps

        def wrt(row, node):
            # derivative against a terminal voltage; sp takes minus the rest
            if node == "sp":
                return -float(row[:len(COLUMN_NODES) - 1].sum())
            return float(row[_COLUMN[node]])

        channel = jacobians.channel
        cbs_row, cbd_row = jacobians.junctions
        charge = jacobians.charges

        op = {
            "id": polarity * evaluation.channel,
            "ids": polarity * x["ids"],
            "ibs": polarity * float(evaluation.junctions[0]),
            "ibd": polarity * float(evaluation.junctions[1]),
            "isub": polarity * x["isub"],
            "igidl": polarity * x["igidl"],
            "igisl": polarity * x["igisl"],
            "igs": polarity * x["igs"],
            "igd": polarity * x["igd"],
            "igb": polarity * x["igb"],
            "igcs": polarity * x["igcs"],
            "igcd": polarity * x["igcd"],
            "gm": float(channel[_COLUMN["gp"]]),
            "gds": float(channel[_COLUMN["dp"]]),
            "gmbs": float(channel[_COLUMN["bp"]]),
            "gbs": float(cbs_row[_COLUMN["bp"]] + cbs_row[_COLUMN["sb"]]),
            "gbd": float(cbd_row[_COLUMN["bp"]] + cbd_row[_COLUMN["db"]]),
            "vgs": polarity * v.vgs,
            "vds": polarity * v.vds,
            "vbs": polarity * v.vbs,
            "vth": polarity * x["vth"],
            "von": polarity * x["von"],
            "vdsat": polarity * x["vdsat"],
            "vdseff": x["vdseff"],
            "vgsteff": x["vgsteff"],
            "vbseff": x["vbseff"],
            "abulk": x["abulk"],
            "ueff": x["ueff"],
            "rds": x["rds"],
            "beta": x["beta"],
            "gcrg": x["gcrg"],
            "gtau": x["gtau"],
            "taunet": x["taunet"],
            "gstot": x["gstot"],
            "gdtot": x["gdtot"],
            "dxpart": x["dxpart"],
            "sxpart": 1.0 - x["dxpart"],
            "qinv": polarity * x["qinv"],
            "noiGd0": x["noiGd0"],
            "mode": float(evaluation.mode),
            "gdrain": it.drain_conductance,
            "gsource": it.source_conductance,
            "grgeltd": it.grgeltd,
        }

        state = self.state[0]
        op["qg"] = polarity * state.qg
        op["qd"] = polarity * state.qd
        op["qs"] = polarity * state.qs
        op["qb"] = polarity * state.qb
        op["qgmid"] = polarity * state.qgmid
        op["qbs"] = polarity * x["qbs"]
        op["qbd"] = polarity * x["qbd"]

        op["capbs"] = float(charge[_CHARGE_ROW["qbs"], _COLUMN["bp"]]
                            + charge[_CHARGE_ROW["qbs"], _COLUMN["sb"]])
        op["capbd"] = float(charge[_CHARGE_ROW["qbd"], _COLUMN["bp"]]
                            + charge[_CHARGE_ROW["qbd"], _COLUMN["db"]])

        terminal_nodes = {"g": "gp", "d": "dp", "s": "sp", "b": "bp"}
        for i, q in enumerate(("g", "d", "s", "b")):
            row = jacobians.intrinsic[i]
            for t in _TERMINALS:
                op[f"c{q}{t}b"] = wrt(row, terminal_nodes[t])
        return op

    def __repr__(self) -> str:
        return f"Bsim4Device({self.name!r}, model={self.model.name!r})"
