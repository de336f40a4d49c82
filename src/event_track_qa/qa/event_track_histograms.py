"""
QA distributions of selected collisions and their tracks.

Declares the histograms in a HistogramRegistry and fills them per collision.
Binning follows the standard event/track QA axes; the pt axis is variable.
"""

import math

from event_track_qa.config.logging_config import get_logger
from event_track_qa.data.event_data import Collision, Track, TrackParametrization
from event_track_qa.qa.histogram_registry import Axis, HistogramRegistry

PT_BIN_EDGES = [
    0.0, 0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0,
    1.1, 1.2, 1.3, 1.4, 1.5, 2.0, 5.0, 10.0, 20.0, 50.0,
]  # fmt: skip

AXIS_PT = Axis.variable(PT_BIN_EDGES, "p_T [GeV/c]")
AXIS_ETA = Axis(180, -0.9, 0.9, "eta")
AXIS_PHI = Axis(180, 0.0, 2 * math.pi, "phi [rad]")
AXIS_NUM_CONTRIB = Axis(200, 0, 200, "Number Of contributors to the PV")
AXIS_POS_XY = Axis(500, -1.0, 1.0)
AXIS_POS_Z = Axis(100, -20.0, 20.0, "Z [cm]")
AXIS_VERTEX_COV = Axis(100, -0.005, 0.005)
AXIS_VERTEX_RESO = Axis(100, -0.5, 0.5)
AXIS_MULTIPLICITY = Axis(200, 0, 200, "Track Multiplicity")
AXIS_PAR_X = Axis(200, -0.36, 0.36, "x [cm]")
AXIS_PAR_Y = Axis(200, -0.5, 0.5, "y [cm]")
AXIS_PAR_Z = Axis(200, -11.0, 11.0, "z [cm]")
AXIS_PAR_ALPHA = Axis(36, -math.pi, math.pi, "alpha [rad]")
AXIS_PAR_SIGNED1PT = Axis(200, -8, 8, "q/p_T")
AXIS_PAR_SNP = Axis(11, -0.1, 0.1, "snp")
AXIS_PAR_TGL = Axis(200, -1.0, 1.0, "tgl")
AXIS_DELTA_PT = Axis(100, -0.5, 0.5, "p_T,rec - p_T,gen")
AXIS_DELTA_ETA = Axis(100, -0.1, 0.1, "eta_rec - eta_gen")
AXIS_DELTA_PHI = Axis(100, -0.1, 0.1, "phi_rec - phi_gen")
AXIS_DCA = Axis(200, -0.15, 0.15)
AXIS_TPC_CLUSTERS = Axis(165, -0.5, 164.5)
AXIS_ITS_LAYER = Axis(8, -1.5, 6.5, "layer ITS")
AXIS_ITS_NHITS = Axis(8, -0.5, 7.5, "No. of hits")

# Track parameter accessors shared by the DCA and IU sets
TRACK_PARAMETER_AXES = {
    "x": AXIS_PAR_X,
    "y": AXIS_PAR_Y,
    "z": AXIS_PAR_Z,
    "alpha": AXIS_PAR_ALPHA,
    "signed1Pt": AXIS_PAR_SIGNED1PT,
    "snp": AXIS_PAR_SNP,
    "tgl": AXIS_PAR_TGL,
}
TRACK_PARAMETER_ATTRIBUTES = {
    "x": "x",
    "y": "y",
    "z": "z",
    "alpha": "alpha",
    "signed1Pt": "signed1_pt",
    "snp": "snp",
    "tgl": "tgl",
}
COVARIANCE_TERMS = ("XX", "XY", "XZ", "YY", "YZ", "ZZ")

NUM_TRACK_FLAG_BITS = 64


class EventTrackHistograms:
    """Declares and fills the collision and track QA histograms."""

    def __init__(
        self,
        registry: HistogramRegistry,
        is_mc: bool = False,
        with_reco: bool = True,
        with_iu: bool = False,
        with_iu_filtered: bool = False,
    ):
        """
        Args:
            registry: Metrics sink receiving the samples
            is_mc: Also declare truth-resolution histograms
            with_reco: Declare the collision/track distributions
            with_iu: Declare the IU vs DCA comparison histograms
            with_iu_filtered: Declare the accepted IU track parameter histograms
        """
        self.logger = get_logger(__name__)
        self.registry = registry
        self.is_mc = is_mc
        self.with_reco = with_reco
        self.with_iu = with_iu
        self.with_iu_filtered = with_iu_filtered

        if with_reco:
            self._declare_event_histograms()
            self._declare_track_histograms()
        if with_iu:
            self._declare_iu_histograms()
        if with_iu_filtered:
            self._declare_iu_filtered_histograms()

        self.logger.info(
            f"Declared {len(registry)} QA histograms "
            f"(mc={is_mc}, iu={with_iu}, iu_filtered={with_iu_filtered})"
        )

    def _declare_event_histograms(self) -> None:
        add = self.registry.add
        add("Events/recoEff", Axis(2, 0.5, 2.5), bin_labels=["all", "selected"])
        add("Events/posX", AXIS_POS_XY.with_title("X [cm]"))
        add("Events/posY", AXIS_POS_XY.with_title("Y [cm]"))
        add("Events/posZ", AXIS_POS_Z)
        add(
            "Events/posXY",
            [AXIS_POS_XY.with_title("X [cm]"), AXIS_POS_XY.with_title("Y [cm]")],
        )
        add("Events/posXvsNContrib", [AXIS_POS_XY.with_title("X [cm]"), AXIS_NUM_CONTRIB])
        add("Events/posYvsNContrib", [AXIS_POS_XY.with_title("Y [cm]"), AXIS_NUM_CONTRIB])
        add("Events/posZvsNContrib", [AXIS_POS_Z, AXIS_NUM_CONTRIB])
        add("Events/nContrib", AXIS_NUM_CONTRIB)
        add("Events/nContribVsMult", [AXIS_NUM_CONTRIB, AXIS_MULTIPLICITY])
        add("Events/vertexChi2", Axis(100, 0, 100, "chi2"))
        for term in COVARIANCE_TERMS:
            add(f"Events/cov{term}", AXIS_VERTEX_COV.with_title(f"Cov_{term.lower()} [cm^2]"))
        add("Events/nTracks", AXIS_MULTIPLICITY)

        if self.is_mc:
            for coordinate in ("X", "Y", "Z"):
                add(
                    f"Events/reso{coordinate}",
                    [
                        AXIS_VERTEX_RESO.with_title(f"{coordinate}_Rec - {coordinate}_Gen [cm]"),
                        AXIS_NUM_CONTRIB,
                    ],
                )

    def _declare_track_histograms(self) -> None:
        add = self.registry.add
        add("Tracks/recoEff", Axis(2, 0.5, 2.5), bin_labels=["all", "selected"])

        # kine histograms
        add("Tracks/Kine/pt", AXIS_PT)
        add("Tracks/Kine/eta", AXIS_ETA)
        add("Tracks/Kine/phi", AXIS_PHI)
        if self.is_mc:
            add("Tracks/Kine/resoPt", [AXIS_DELTA_PT, AXIS_PT])
            add("Tracks/Kine/resoEta", [AXIS_DELTA_ETA, AXIS_ETA])
            add("Tracks/Kine/resoPhi", [AXIS_DELTA_PHI, AXIS_PHI])
        add("Tracks/Kine/relativeResoPt", [AXIS_PT, Axis(100, 0.0, 0.3)])
        add("Tracks/Kine/relativeResoPtMean", AXIS_PT, kind="profile")

        # track parameters
        for name, axis in TRACK_PARAMETER_AXES.items():
            add(f"Tracks/{name}", axis)
        add("Tracks/flags", Axis(NUM_TRACK_FLAG_BITS, -0.5, NUM_TRACK_FLAG_BITS - 0.5, "flag bit"))
        add("Tracks/dcaXY", AXIS_DCA.with_title("dcaXY [cm]"))
        add("Tracks/dcaZ", AXIS_DCA.with_title("dcaZ [cm]"))
        add("Tracks/dcaXYvsPt", [AXIS_DCA.with_title("dcaXY [cm]"), AXIS_PT])
        add("Tracks/dcaZvsPt", [AXIS_DCA.with_title("dcaZ [cm]"), AXIS_PT])
        add("Tracks/length", Axis(400, 0, 1000, "Length [cm]"))

        # its histograms
        add("Tracks/ITS/itsNCls", Axis(8, -0.5, 7.5, "# clusters ITS"))
        add("Tracks/ITS/itsChi2NCl", Axis(100, 0, 40, "chi2 / cluster ITS"))
        add("Tracks/ITS/itsHits", [AXIS_ITS_LAYER, AXIS_ITS_NHITS])
        add("Tracks/ITS/itsHitsUnfiltered", [AXIS_ITS_LAYER, AXIS_ITS_NHITS])
        add("Tracks/ITS/hasITS", AXIS_PT)
        add("Tracks/ITS/hasITSANDhasTPC", AXIS_PT)

        # tpc histograms
        add("Tracks/TPC/tpcNClsFindable", AXIS_TPC_CLUSTERS.with_title("# findable clusters TPC"))
        add("Tracks/TPC/tpcNClsFound", AXIS_TPC_CLUSTERS.with_title("# clusters TPC"))
        add("Tracks/TPC/tpcNClsShared", AXIS_TPC_CLUSTERS.with_title("# shared clusters TPC"))
        add("Tracks/TPC/tpcCrossedRows", AXIS_TPC_CLUSTERS.with_title("# crossed rows TPC"))
        add("Tracks/TPC/tpcFractionSharedCls", Axis(100, 0.0, 1.0, "fraction shared clusters TPC"))
        add(
            "Tracks/TPC/tpcCrossedRowsOverFindableCls",
            Axis(60, 0.7, 1.3, "crossed rows / findable clusters TPC"),
        )
        add("Tracks/TPC/tpcChi2NCl", Axis(100, 0, 10, "chi2 / cluster TPC"))
        add("Tracks/TPC/hasTPC", AXIS_PT)

    def _declare_iu_histograms(self) -> None:
        add = self.registry.add
        kinematic_axes = {"Pt": AXIS_PT, "Eta": AXIS_ETA, "Phi": AXIS_PHI}
        for name, axis in kinematic_axes.items():
            add(f"Tracks/IU/{name}", axis)
        for name, axis in TRACK_PARAMETER_AXES.items():
            add(f"Tracks/IU/{name}", axis)
        for name, axis in kinematic_axes.items():
            add(f"Tracks/IUdeltaDCA/{name}", axis)
            add(f"Tracks/IUvsDCA/{name}", [axis, axis])

    def _declare_iu_filtered_histograms(self) -> None:
        add = self.registry.add
        add("Tracks/IUFiltered/Pt", AXIS_PT)
        add("Tracks/IUFiltered/Eta", AXIS_ETA)
        add("Tracks/IUFiltered/Phi", AXIS_PHI)
        for name, axis in TRACK_PARAMETER_AXES.items():
            add(f"Tracks/IUFiltered/{name}", axis)

    def fill_its_hits(self, path: str, track: Track) -> None:
        """Fill hits-per-layer, using layer -1 for tracks without ITS clusters."""
        layers = track.its_layers_hit()
        n_hits = len(layers)
        if not layers:
            self.registry.fill(path, -1, n_hits)
        for layer in layers:
            self.registry.fill(path, layer, n_hits)

    def fill_event(
        self,
        collision: Collision,
        n_tracks: int,
    ) -> None:
        """Fill collision-level distributions of a selected collision."""
        fill = self.registry.fill
        fill("Events/posX", collision.pos_x)
        fill("Events/posY", collision.pos_y)
        fill("Events/posZ", collision.pos_z)
        fill("Events/posXY", collision.pos_x, collision.pos_y)

        fill("Events/posXvsNContrib", collision.pos_x, collision.num_contrib)
        fill("Events/posYvsNContrib", collision.pos_y, collision.num_contrib)
        fill("Events/posZvsNContrib", collision.pos_z, collision.num_contrib)

        fill("Events/nContrib", collision.num_contrib)
        fill("Events/nContribVsMult", collision.num_contrib, n_tracks)
        fill("Events/vertexChi2", collision.chi2)

        for term in COVARIANCE_TERMS:
            fill(f"Events/cov{term}", getattr(collision, f"cov_{term.lower()}"))

        fill("Events/nTracks", n_tracks)

        # vertex resolution
        if self.is_mc and collision.mc_collision is not None:
            mc_collision = collision.mc_collision
            fill("Events/resoX", collision.pos_x - mc_collision.pos_x, collision.num_contrib)
            fill("Events/resoY", collision.pos_y - mc_collision.pos_y, collision.num_contrib)
            fill("Events/resoZ", collision.pos_z - mc_collision.pos_z, collision.num_contrib)

    def fill_track(self, track: Track) -> None:
        """Fill track-level distributions of one selected track."""
        fill = self.registry.fill

        # kinematic variables
        fill("Tracks/Kine/pt", track.pt)
        fill("Tracks/Kine/eta", track.eta)
        fill("Tracks/Kine/phi", track.phi)
        fill("Tracks/Kine/relativeResoPt", track.pt, track.pt_resolution)
        fill("Tracks/Kine/relativeResoPtMean", track.pt, track.pt_resolution)

        # track parameters
        for name, attribute in TRACK_PARAMETER_ATTRIBUTES.items():
            fill(f"Tracks/{name}", getattr(track, attribute))
        for bit in range(NUM_TRACK_FLAG_BITS):
            if track.flags & (1 << bit):
                fill("Tracks/flags", bit)
        fill("Tracks/dcaXY", track.dca_xy)
        fill("Tracks/dcaZ", track.dca_z)
        fill("Tracks/dcaXYvsPt", track.dca_xy, track.pt)
        fill("Tracks/dcaZvsPt", track.dca_z, track.pt)
        fill("Tracks/length", track.length)

        # ITS variables
        fill("Tracks/ITS/itsNCls", track.its_ncls)
        fill("Tracks/ITS/itsChi2NCl", track.its_chi2_ncl)
        self.fill_its_hits("Tracks/ITS/itsHits", track)

        # TPC variables
        fill("Tracks/TPC/tpcNClsFindable", track.tpc_ncls_findable)
        fill("Tracks/TPC/tpcNClsFound", track.tpc_ncls_found)
        fill("Tracks/TPC/tpcNClsShared", track.tpc_ncls_shared)
        fill("Tracks/TPC/tpcCrossedRows", track.tpc_ncls_crossed_rows)
        fill(
            "Tracks/TPC/tpcCrossedRowsOverFindableCls",
            track.tpc_crossed_rows_over_findable_cls,
        )
        fill("Tracks/TPC/tpcFractionSharedCls", track.tpc_fraction_shared_cls)
        fill("Tracks/TPC/tpcChi2NCl", track.tpc_chi2_ncl)

        if self.is_mc and track.mc_particle is not None:
            particle = track.mc_particle
            fill("Tracks/Kine/resoPt", track.pt - particle.pt, track.pt)
            fill("Tracks/Kine/resoEta", track.eta - particle.eta, track.eta)
            fill("Tracks/Kine/resoPhi", track.phi - particle.phi, track.phi)

        # ITS-TPC matching pt-distributions
        if track.has_its:
            fill("Tracks/ITS/hasITS", track.pt)
        if track.has_tpc:
            fill("Tracks/TPC/hasTPC", track.pt)
        if track.has_its and track.has_tpc:
            fill("Tracks/ITS/hasITSANDhasTPC", track.pt)

    def fill_reco(
        self,
        collision: Collision,
        all_tracks: list[Track],
        prefiltered_tracks: list[Track],
        selected_tracks: list[Track],
    ) -> None:
        """
        Fill all reconstruction-level distributions of one selected collision.

        Args:
            collision: Collision that passed the event selection
            all_tracks: Every track of the collision, before any filter
            prefiltered_tracks: Tracks passing the reconstruction-level prefilter
            selected_tracks: Tracks passing the full track selection
        """
        self.fill_event(collision, len(selected_tracks))

        self.registry.fill("Tracks/recoEff", 1, weight=len(all_tracks))
        self.registry.fill("Tracks/recoEff", 2, weight=len(prefiltered_tracks))

        for track in all_tracks:
            self.fill_its_hits("Tracks/ITS/itsHitsUnfiltered", track)

        for track in selected_tracks:
            self.fill_track(track)

    def fill_iu_comparison(self, track: Track) -> bool:
        """
        Compare the IU parameters of a track with those at the DCA.

        Returns:
            True if filled, False if the track carries no IU snapshot
        """
        iu = track.iu
        if iu is None:
            return False
        self._fill_parametrization("Tracks/IU", iu)

        fill = self.registry.fill
        fill("Tracks/IUdeltaDCA/Pt", iu.pt - track.pt)
        fill("Tracks/IUdeltaDCA/Eta", iu.eta - track.eta)
        fill("Tracks/IUdeltaDCA/Phi", iu.phi - track.phi)

        fill("Tracks/IUvsDCA/Pt", track.pt, iu.pt)
        fill("Tracks/IUvsDCA/Eta", track.eta, iu.eta)
        fill("Tracks/IUvsDCA/Phi", track.phi, iu.phi)
        return True

    def fill_iu_filtered(self, track: Track) -> bool:
        """Fill the IU track parameters of an accepted track, if it has a snapshot."""
        if track.iu is None:
            return False
        self._fill_parametrization("Tracks/IUFiltered", track.iu)
        return True

    def _fill_parametrization(self, prefix: str, iu: TrackParametrization) -> None:
        fill = self.registry.fill
        fill(f"{prefix}/Pt", iu.pt)
        fill(f"{prefix}/Eta", iu.eta)
        fill(f"{prefix}/Phi", iu.phi)
        for name, attribute in TRACK_PARAMETER_ATTRIBUTES.items():
            fill(f"{prefix}/{name}", getattr(iu, attribute))
