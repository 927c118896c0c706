"""
Visualization tools for path selection diversity experiments.
"""

import os
from typing import Dict, List, Optional

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
from plotly.subplots import make_subplots

from .network import RelayRole, RelayStore
from .simulator import ExperimentAggregate, to_frame


class Visualizer:
    """Plots for comparing the diversity of path selection algorithms."""

    def __init__(self, theme: str = "plotly_white"):
        self.theme = theme

    def plot_country_distribution(self,
                                  aggregate: ExperimentAggregate,
                                  role: Optional[RelayRole] = None,
                                  top: int = 20) -> go.Figure:
        """Bar chart of how often each country was picked."""
        counts = aggregate.all_countries if role is None else aggregate.countries_by_role[role]
        label = "All Hops" if role is None else f"{role.value.title()} Hops"

        if not counts:
            return go.Figure().add_annotation(
                text="No circuits recorded",
                xref="paper", yref="paper",
                x=0.5, y=0.5, showarrow=False
            )

        countries, values = zip(*counts.most_common(top))

        fig = go.Figure()
        fig.add_trace(go.Bar(
            x=list(countries),
            y=list(values),
            name=label,
            marker_color='lightblue'
        ))

        fig.update_layout(
            title=(f"Country Distribution - {label} "
                   f"({aggregate.algorithm.value}, H={aggregate.country_entropy(role):.3f} bits)"),
            xaxis_title="Country",
            yaxis_title="Selections",
            template=self.theme
        )

        return fig

    def plot_entropy_comparison(self, aggregates: Dict[str, ExperimentAggregate]) -> go.Figure:
        """Grouped bars of per-role entropy for each named run."""
        rows = []
        for name, aggregate in aggregates.items():
            rows.append({"run": name, "position": "all", "entropy": aggregate.country_entropy()})
            for role in RelayRole:
                rows.append({"run": name, "position": role.value,
                             "entropy": aggregate.country_entropy(role)})
        df = pd.DataFrame(rows)

        fig = px.bar(df, x="position", y="entropy", color="run", barmode="group",
                     template=self.theme)
        fig.update_layout(
            title="Shannon Entropy of Country Selection",
            xaxis_title="Circuit Position",
            yaxis_title="Entropy (bits)"
        )

        return fig

    def plot_entropy_vs_alpha(self, results: List[ExperimentAggregate]) -> go.Figure:
        """Entropy as a function of the guard diversity weight, one line per beta."""
        df = to_frame(results)
        if df.empty:
            return go.Figure()

        fig = go.Figure()
        for beta, group in df.groupby("beta"):
            group = group.sort_values("alpha")
            fig.add_trace(go.Scatter(
                x=group["alpha"],
                y=group["entropy_all"],
                mode='lines+markers',
                name=f'beta={beta:.2f}',
                line=dict(width=3),
                marker=dict(size=8)
            ))

        fig.update_layout(
            title="Country Entropy vs Guard Diversity Weight",
            xaxis_title="alpha",
            yaxis_title="Entropy over all hops (bits)",
            template=self.theme,
            hovermode='x unified'
        )

        return fig

    def plot_bandwidth_distribution(self, aggregates: Dict[str, ExperimentAggregate]) -> go.Figure:
        """Histogram of circuit bottleneck bandwidths per run."""
        fig = go.Figure()

        for name, aggregate in aggregates.items():
            fig.add_trace(go.Histogram(
                x=aggregate.circuit_bandwidths,
                nbinsx=50,
                name=name,
                opacity=0.7
            ))

        fig.update_layout(
            title="Circuit Minimum Bandwidth",
            xaxis_title="Minimum Bandwidth",
            yaxis_title="Circuits",
            barmode='overlay',
            template=self.theme
        )

        return fig

    def plot_relay_geography(self, relays: RelayStore) -> go.Figure:
        """Geographic distribution of the relay population."""
        distribution = relays.country_distribution()

        fig = go.Figure()
        fig.add_trace(go.Bar(
            x=list(distribution.keys()),
            y=list(distribution.values()),
            name='Relays',
            marker_color='lightblue'
        ))

        fig.update_layout(
            title="Geographic Distribution of Relays",
            xaxis_title="Country",
            yaxis_title="Number of Relays",
            template=self.theme
        )

        return fig

    def create_dashboard(self, aggregates: Dict[str, ExperimentAggregate]) -> go.Figure:
        """Entropy and distinct-relay counts side by side."""
        fig = make_subplots(
            rows=1, cols=2,
            subplot_titles=["Country Entropy (bits)", "Distinct Relays Used"]
        )

        names = list(aggregates.keys())
        fig.add_trace(
            go.Bar(x=names, y=[a.country_entropy() for a in aggregates.values()], name='Entropy'),
            row=1, col=1
        )
        fig.add_trace(
            go.Bar(x=names, y=[len(a.all_relays) for a in aggregates.values()], name='Distinct'),
            row=1, col=2
        )

        fig.update_layout(
            height=500,
            showlegend=False,
            title_text="Path Selection Diversity",
            template=self.theme
        )

        return fig


def save_plots(figures: Dict[str, go.Figure],
               output_dir: str = "plots",
               formats: Optional[List[str]] = None) -> List[str]:
    """Save multiple plots to files and return the written paths."""
    formats = formats or ["html"]
    os.makedirs(output_dir, exist_ok=True)

    written = []
    for name, fig in figures.items():
        for fmt in formats:
            filepath = os.path.join(output_dir, f"{name}.{fmt}")

            if fmt == "html":
                fig.write_html(filepath)
            elif fmt in ("png", "pdf"):
                fig.write_image(filepath, width=1200, height=800)
            else:
                raise ValueError(f"Unsupported plot format: {fmt}")
            written.append(filepath)

    return written
