import pytest

from event_track_qa.data.event_data import (
    Collision,
    DetectorQualityFlags,
    DetectorTimes,
    MultiplicityInputs,
    Track,
    TruthCollision,
    TruthParticle,
)
from event_track_qa.selection.parameters import SelectionParameters


def window_center(window) -> float:
    return 0.5 * (window.lower + window.upper)


def good_times(params: SelectionParameters) -> DetectorTimes:
    """Times at the center of every beam-beam window."""
    return DetectorTimes(
        v0a=window_center(params.v0a.beam_beam),
        v0c=window_center(params.v0c.beam_beam),
        fda=window_center(params.fda.beam_beam),
        fdc=window_center(params.fdc.beam_beam),
        zna=0.0,
        znc=0.0,
        t0a=0.0,
        t0c=0.0,
    )


# Values passing every default correlation cut
GOOD_MULTIPLICITIES = MultiplicityInputs(
    v0m_online=100.0,
    v0m_offline=100.0,
    spd_online=50.0,
    spd_offline=100.0,
    v0c3=50.0,
    v0c012=1000.0,
    spd_clusters=100.0,
    spd_tracklets=50.0,
)

GOOD_QUALITY = DetectorQualityFlags(
    good_time_range=True,
    complete_daq=True,
    no_tpc_laser_warm_up=True,
    no_tpc_hv_dip=True,
    no_pileup_from_spd=True,
    no_v0_past_future_pileup=True,
)


@pytest.fixture
def params():
    return SelectionParameters()


@pytest.fixture
def make_collision(params):
    """Factory of collisions passing every selection flag unless overridden."""

    def _make(**overrides):
        values = dict(
            global_index=0,
            pos_x=0.01,
            pos_y=-0.01,
            pos_z=0.0,
            num_contrib=25,
            chi2=1.5,
            run_number=520000,
            times=good_times(params),
            multiplicities=GOOD_MULTIPLICITIES,
            quality=GOOD_QUALITY,
        )
        values.update(overrides)
        return Collision(**values)

    return _make


@pytest.fixture
def make_track():
    """Factory of global tracks in acceptance."""

    def _make(**overrides):
        values = dict(
            global_index=0,
            collision_index=0,
            pt=1.0,
            eta=0.2,
            phi=1.0,
            sign=1,
            flags=0b101,
            its_cluster_map=0b1111111,
            its_chi2_ncl=1.2,
            tpc_ncls_findable=150,
            tpc_ncls_found=130,
            tpc_ncls_shared=13,
            tpc_ncls_crossed_rows=140,
            tpc_chi2_ncl=2.0,
            tpc_signal=55.0,
            tof_signal=13000.0,
            tof_event_time=12500.0,
            c1pt21pt2=0.0001,
            dca_xy=0.01,
            dca_z=-0.02,
            length=380.0,
            has_its=True,
            has_tpc=True,
            is_global_track=True,
            is_in_acceptance=True,
        )
        values.update(overrides)
        return Track(**values)

    return _make


@pytest.fixture
def make_particle():
    def _make(**overrides):
        values = dict(
            global_index=0,
            mc_collision_index=0,
            pt=1.01,
            eta=0.21,
            phi=1.0,
            pdg_code=211,
            vx=0.0,
            vy=0.0,
            vz=0.0,
            is_physical_primary=True,
            process=0,
        )
        values.update(overrides)
        return TruthParticle(**values)

    return _make


@pytest.fixture
def mc_collision():
    return TruthCollision(global_index=0, pos_x=0.0, pos_y=0.0, pos_z=0.05)
