"""Tests for device setup, voltage selection, loads and the operating point."""

import numpy as np
import pytest

from bsim4jax import (
    Bsim4Device,
    Bsim4Model,
    InitMode,
    Integrator,
    LoadResult,
    SimulationContext,
)

NODES = (1, 2, 3, 4)


def context_at(vd, vg, vs=0.0, vb=0.0, **kwargs):
    return SimulationContext(solution=np.array([0.0, vd, vg, vs, vb]), **kwargs)


class TestNodeSetup:
    def test_minimal_device_has_no_internal_nodes(self, nmos_model):
        device = Bsim4Device("m1", nmos_model)
        ids = device.setup((1, 2, 3, 4))
        assert ids["dp"] == 1 and ids["sp"] == 3
        assert ids["gp"] == 2 and ids["gm"] == 2
        assert ids["db"] == ids["bp"] == ids["sb"] == 4
        assert ids["q"] == 0

    def test_mapping_and_allocator(self, nmos_model):
        labels = []

        def allocate(label):
            labels.append(label)
            return 10 + len(labels)

        device = Bsim4Device("m1", nmos_model, rgatemod=3)
        ids = device.setup({"d": 1, "g": 2, "s": 0, "b": 0}, allocate=allocate)
        assert ids["gp"] == 11
        assert ids["gm"] == 12
        assert labels == ["m1#gp", "m1#gm"]

    def test_wrong_node_count(self, nmos_model):
        with pytest.raises(ValueError):
            Bsim4Device("m1", nmos_model).setup((1, 2, 3))

    def test_body_network_nodes(self, nmos_model):
        device = Bsim4Device("m1", nmos_model, rbodymod=1)
        ids = device.setup(NODES)
        assert len({ids["db"], ids["bp"], ids["sb"], ids["b"]}) == 4

    def test_nqs_charge_node(self, nmos_model):
        device = Bsim4Device("m1", nmos_model, trnqsmod=1)
        ids = device.setup(NODES)
        assert ids["q"] == 5

    def test_rdsmod_creates_both_series_nodes(self):
        model = Bsim4Model(rdsmod=1).setup()
        ids = Bsim4Device("m1", model).setup(NODES)
        assert ids["dp"] not in NODES
        assert ids["sp"] not in NODES

    def test_sheet_resistance_with_squares(self):
        model = Bsim4Model(rsh=10.0).setup()
        ids = Bsim4Device("m1", model, nrd=2.0).setup(NODES)
        assert ids["dp"] == 5
        assert ids["sp"] == ids["s"]

    def test_sheet_resistance_from_layout(self):
        model = Bsim4Model(rsh=10.0, dmcg=1e-7).setup()
        ids = Bsim4Device("m1", model, rgeomod=1).setup(NODES)
        assert ids["dp"] not in NODES
        assert ids["sp"] not in NODES


class TestInstanceResolution:
    def test_defaults_from_model(self):
        model = Bsim4Model(rbdb=75.0, xgw=1e-7, rgatemod=1, dmcg=2e-7).setup()
        device = Bsim4Device("m1", model)
        inst = device.resolve_instance()
        assert inst.rbdb == 75.0
        assert inst.xgw == 1e-7
        assert inst.rgatemod == 1
        assert inst.sd == pytest.approx(4e-7)

    def test_instance_values_win(self):
        model = Bsim4Model(rbdb=75.0, rgatemod=1).setup()
        inst = Bsim4Device("m1", model, rbdb=20.0, rgatemod=2).resolve_instance()
        assert inst.rbdb == 20.0
        assert inst.rgatemod == 2

    def test_illegal_selector_falls_back_to_model(self, nmos_model):
        inst = Bsim4Device("m1", nmos_model, rgatemod=7).resolve_instance()
        assert inst.rgatemod == nmos_model.params.rgatemod
        assert any(record.parameter == "rgatemod" for record in nmos_model.diagnostics)

    def test_trnqsmod_overrides_acnqsmod(self, nmos_model):
        inst = Bsim4Device("m1", nmos_model, trnqsmod=1, acnqsmod=1).resolve_instance()
        assert inst.trnqsmod == 1
        assert inst.acnqsmod == 0

    def test_card_is_not_modified(self, nmos_model):
        device = Bsim4Device("m1", nmos_model)
        device.resolve_instance()
        assert not device.card.given("rbdb")

    def test_load_before_temperature(self, nmos_model):
        device = Bsim4Device("m1", nmos_model)
        device.setup(NODES)
        with pytest.raises(RuntimeError):
            device.load_dc(SimulationContext())


class TestVoltageSelection:
    def test_junction_guess(self, make_device):
        device = make_device(nodes=NODES)
        device.load_dc(context_at(0.0, 0.0, mode=InitMode.JCT))
        v = device.state.voltages(0)
        assert v.vds == pytest.approx(0.1)
        assert v.vdes == pytest.approx(0.11)
        assert v.vses == pytest.approx(-0.01)
        assert v.vgs == pytest.approx(device.temps.vth0 + 0.1)
        assert v.vbs == 0.0

    def test_junction_guess_pmos(self, make_device, pmos_model):
        device = make_device(model=pmos_model, nodes=NODES)
        device.load_dc(context_at(0.0, 0.0, mode=InitMode.JCT))
        v = device.state.voltages(0)
        assert v.vgs == pytest.approx(-device.temps.vth0 + 0.1)
        assert v.vgs > 0.0

    def test_initial_conditions(self, make_device):
        device = make_device(nodes=NODES, icvds=0.5, icvgs=1.0)
        device.load_dc(context_at(0.0, 0.0, mode=InitMode.JCT))
        v = device.state.voltages(0)
        assert v.vds == 0.5
        assert v.vgs == 1.0
        assert v.vges == 1.0
        assert v.vdes == pytest.approx(0.51)
        assert v.vses == pytest.approx(-0.01)

    @pytest.mark.parametrize("mode", [InitMode.JCT, InitMode.FIX])
    def test_off_device_held_at_zero(self, make_device, mode):
        device = make_device(nodes=NODES, off=1)
        result = device.load_dc(context_at(1.0, 1.0, mode=mode))
        assert tuple(device.state.voltages(0)) == (0.0,) * 10
        assert result.converged
        assert result.outputs["id"] == 0.0

    def test_predictor_reads_solution(self, make_device):
        device = make_device(nodes=NODES)
        device.load_dc(context_at(0.9, 1.1, vs=0.1, vb=0.0))
        v = device.state.voltages(0)
        assert v.vds == pytest.approx(0.8)
        assert v.vgs == pytest.approx(1.0)
        assert v.vbs == pytest.approx(-0.1)

    def test_transient_start_uses_accepted_voltages(self, make_device):
        device = make_device(nodes=NODES)
        device.load_dc(context_at(0.5, 1.0))
        device.accept()
        device.load_dc(context_at(3.0, 3.0, mode=InitMode.TRAN, analysis="tran"),
                       Integrator("be", 1e-9))
        assert device.state.voltages(0).vds == pytest.approx(0.5)

    def test_large_junction_step_is_not_converged(self, make_device):
        device = make_device(nodes=NODES)
        result = device.load_dc(context_at(0.1, 0.0, vb=2.0))
        assert not result.converged
        assert device.state.voltages(0).vbs < 2.0

    def test_gate_step_limited_against_threshold(self, make_device):
        device = make_device(nodes=NODES)
        device.load_dc(context_at(0.1, 0.0))
        von = device.operating_point()["von"]
        device.load_dc(context_at(0.1, 10.0))
        # from below threshold, the gate may move at most to von + 0.5
        assert device.state.voltages(0).vgs == pytest.approx(von + 0.5)


class TestLoads:
    def test_result_type(self, make_device):
        result = make_device(nodes=NODES).load_dc(context_at(1.0, 1.0))
        assert isinstance(result, LoadResult)
        assert result.outputs["id"] > 0.0

    def test_repeated_loads_are_identical(self, make_device):
        device = make_device(nodes=NODES)
        context = context_at(1.0, 1.2, vs=0.0, vb=-0.1)
        first = device.load_dc(context)
        second = device.load_dc(context)
        assert second.converged
        assert first.stamps.matrix == second.stamps.matrix
        assert first.stamps.rhs == second.stamps.rhs
        assert first.outputs == second.outputs

    def test_dc_load_skips_charges(self, make_device):
        device = make_device(nodes=NODES)
        device.load_dc(context_at(1.0, 1.0))
        assert device.state[0].qg == 0.0

    def test_transient_integrates_charges(self, make_device):
        device = make_device(nodes=NODES)
        integrator = Integrator("be", 1e-9)
        device.load_dc(context_at(0.5, 1.0))
        device.accept()

        device.load_dc(context_at(0.5, 1.0, mode=InitMode.TRAN, analysis="tran"), integrator)
        # first step: history copied forward, so no charge current yet
        assert device.state[1].qg == device.state[0].qg
        assert device.state[0].cqg == pytest.approx(0.0, abs=1e-18)
        device.accept()

        result = device.load_dc(context_at(0.5, 1.1, analysis="tran"), integrator)
        assert result.converged
        assert device.state[0].qg > device.state[1].qg
        assert device.state[0].cqg > 0.0

    def test_transient_stamp_includes_capacitance(self, make_device):
        gate = NODES[1]
        device = make_device(nodes=NODES)
        dc = device.load_dc(context_at(0.5, 1.0))
        device.accept()
        integrator = Integrator("be", 1e-9)
        tran = device.load_dc(context_at(0.5, 1.0, mode=InitMode.TRAN, analysis="tran"), integrator)
        extra = tran.stamps.matrix[(gate, gate)] - dc.stamps.matrix.get((gate, gate), 0.0)
        assert extra == pytest.approx(integrator.ag0 * (device.operating_point()["cggb"]), rel=0.5)
        assert extra > 0.0

    def test_nqs_device_loads(self, make_device):
        device = make_device(nodes=NODES, trnqsmod=1)
        q = device.node_ids["q"]
        result = device.load_dc(
            SimulationContext(solution=np.array([0.0, 1.0, 1.0, 0.0, 0.0, 0.0])))
        assert (q, q) in result.stamps.matrix
        assert result.outputs["gtau"] > 0.0

    @pytest.mark.parametrize("values", [
        {"rgatemod": 1},
        {"rgatemod": 2},
        {"rgatemod": 3},
        {"rbodymod": 1},
        {"rbodymod": 2},
    ])
    def test_resistive_networks_conserve_current(self, make_device, values):
        device = make_device(nodes=NODES, **values)
        size = 1 + max(device.node_ids.values())
        solution = np.zeros(size)
        for node, value in (("d", 1.0), ("g", 1.0), ("dp", 1.0), ("gp", 1.0), ("gm", 1.0)):
            solution[device.node_ids[node]] = value
        result = device.load_dc(SimulationContext(solution=solution))
        columns = {}
        for (row, col), value in result.stamps.matrix.items():
            columns[col] = columns.get(col, 0.0) + value
        scale = max(abs(v) for v in result.stamps.matrix.values())
        assert all(abs(total) <= 1e-9 * scale for total in columns.values())


class TestOperatingPoint:
    def test_reports_named_values(self, make_device, op_at):
        op = op_at(make_device(), 1.0, 1.2)
        for name in ("id", "ibs", "ibd", "isub", "igidl", "igisl", "igs", "igd", "igb",
                     "igcs", "igcd", "gm", "gds", "gmbs", "gbd", "gbs", "qb", "qg", "qs",
                     "qd", "capbd", "capbs", "vth", "vdsat", "vgs", "vds", "vbs",
                     "gcrg", "gtau", "cggb", "cgdb", "cgsb", "cgbb", "cdgb", "cddb",
                     "csgb", "cbgb", "qinv", "noiGd0"):
            assert name in op
        assert len(op) >= 60

    def test_intrinsic_capacitance_signs(self, make_device, op_at):
        op = op_at(make_device(), 1.0, 1.2)
        assert op["cggb"] > 0.0
        assert op["cgdb"] <= 1e-3 * op["cggb"]
        assert op["cgsb"] < 0.0
        assert op["cggb"] + op["cgdb"] + op["cgsb"] + op["cgbb"] == pytest.approx(
            0.0, abs=1e-9 * op["cggb"])

    def test_terminal_charges(self, make_device, op_at):
        op = op_at(make_device(), 1.0, 1.2)
        assert op["qg"] > 0.0
        assert op["qg"] + op["qd"] + op["qs"] + op["qb"] == pytest.approx(0.0, abs=1e-9 * op["qg"])

    def test_junction_capacitances_positive(self, make_device, op_at):
        device = make_device(**{"as": 1e-11, "ad": 1e-11, "ps": 1e-5, "pd": 1e-5})
        op = op_at(device, 1.0, 1.2)
        assert op["capbs"] > 0.0
        assert op["capbd"] > 0.0
        assert op["capbd"] < op["capbs"]  # drain junction is reverse biased

    def test_junction_capacitance_at_zero_bias(self, make_device, op_at):
        device = make_device(**{"as": 1e-11, "ps": 1e-5})
        mt = device.model.current_temperature
        it = device.temps
        zero_bias = (mt.cjs_temp * it.aseff + mt.cjsws_temp * it.pseff
                     + mt.cjswgs_temp * it.size.weffCJ * device.instance.nf)
        at_zero = op_at(device, 0.5, 1.2, 0.0)
        below = op_at(device, 0.5, 1.2, -1e-9)
        assert at_zero["qbs"] == 0.0
        assert at_zero["capbs"] == pytest.approx(zero_bias, rel=1e-9)
        assert at_zero["capbs"] == pytest.approx(below["capbs"], rel=1e-6)

    def test_zero_bias_junction_capacitance_in_ac_stamp(self, make_device):
        omega = 1e6
        couplings = []
        for values in ({}, {"ad": 1e-11}):
            device = make_device(nodes=NODES, **values)
            device.load_dc(context_at(0.0, 0.0))
            stamps = device.load_ac(SimulationContext(analysis="ac"), omega)
            couplings.append((-stamps.matrix[(1, 4)].imag, device.operating_point()["capbd"]))
        (bare, capbd_bare), (drawn, capbd_drawn) = couplings
        # the drawn drain area only adds junction capacitance between drain and bulk
        assert capbd_drawn > capbd_bare > 0.0
        assert drawn - bare == pytest.approx(omega * (capbd_drawn - capbd_bare), rel=1e-6)

    def test_requires_evaluation(self, make_device):
        with pytest.raises(RuntimeError):
            make_device().operating_point()

