"""
Visualization Module for Expected Shortfall Results
---------------------------------------------------

Provides Plotly charts for component Expected Shortfall results and
per-series ES estimates. Plots follow a white-background ("simple_white")
aesthetic and support both interactive display and static export.

Static images are written with `output_path` (format taken from the file
extension, exported through kaleido).

Authors
-------
Alessandro Dodon, Niccolò Lecce, Marco Gasparetti

Contents
--------
- get_asset_color_map: Consistent color assignment for assets
- plot_es_contributions: Component ES bar chart with percentage contributions
- plot_es_estimates: Bar chart of univariate ES per series
"""


#----------------------------------------------------------
# Packages
#----------------------------------------------------------
import itertools

import numpy as np
import plotly.express as px
import plotly.graph_objects as go

from .types import ComponentES, ESEstimate


#----------------------------------------------------------
# Asset Color Map
#----------------------------------------------------------
def get_asset_color_map(assets):
    """
    Main
    ----
    Assign each asset a color from Plotly's qualitative palette, cycling
    through it as needed, so that an asset keeps its color across charts.

    Parameters
    ----------
    assets : list-like
        Asset names.

    Returns
    -------
    dict
        Mapping from asset name to color string.
    """
    color_cycle = itertools.cycle(px.colors.qualitative.Plotly)
    return {asset: next(color_cycle) for asset in assets}


def _finish(fig, interactive, output_path):
    width = fig.layout.width or 1000
    height = fig.layout.height or 500

    if output_path:
        fig.write_image(output_path, width=width, height=height, scale=4)
    if interactive:
        fig.show()
    return fig


#----------------------------------------------------------
# Component ES Bar Chart
#----------------------------------------------------------
def plot_es_contributions(result: ComponentES, interactive=True, output_path=None):
    """
    Main
    ----
    Plot the component ES contribution of each asset.

    Displays a horizontal bar chart of the Euler contributions, sorted by
    size, with the percentage contribution in the hover text. Negative bars
    are diversifiers.

    Parameters
    ----------
    result : ComponentES
        Output of `estimate_es(..., mode="component")`.
    interactive : bool, optional
        Whether to display the plot. Default is True.
    output_path : str, optional
        File path for a static export (e.g. "es.pdf", "es.png").

    Returns
    -------
    plotly.graph_objs.Figure

    Raises
    ------
    ValueError
        If all contributions are zero or undefined.
    """
    contributions = result.contribution.astype(float)
    if not np.any(np.nan_to_num(contributions.to_numpy()) != 0):
        raise ValueError("All component ES contributions are zero; cannot plot bar chart.")

    sorted_assets = contributions.sort_values().index
    asset_colors = get_asset_color_map(sorted_assets)
    percentages = 100 * result.pct_contribution[sorted_assets]

    fig = go.Figure(
        data=[
            go.Bar(
                x=contributions[sorted_assets].values,
                y=list(sorted_assets),
                orientation="h",
                marker=dict(
                    color=[asset_colors[asset] for asset in sorted_assets],
                    line=dict(color="black", width=1)
                ),
                customdata=percentages.values,
                hovertemplate="%{y}<br>Component ES = %{x:.4f}<br>% Contribution = %{customdata:.2f}%<extra></extra>",
                name="Component ES"
            )
        ]
    )

    fig.update_layout(
        title=f"Component {result.method.value.title()} ES by Asset (total = {result.total:.4f})",
        xaxis_title="Component ES",
        yaxis_title="Asset",
        template="simple_white",
        height=500,
        width=1000,
        margin=dict(l=80, r=40, t=50, b=50),
        showlegend=False
    )

    return _finish(fig, interactive, output_path)


#----------------------------------------------------------
# Univariate ES Bar Chart
#----------------------------------------------------------
def plot_es_estimates(result: ESEstimate, interactive=True, output_path=None):
    """
    Plot univariate ES per series. Undefined (flagged) estimates are left out.
    """
    values = result.values.dropna()
    asset_colors = get_asset_color_map(values.index)

    fig = go.Figure(
        data=[
            go.Bar(
                x=list(values.index),
                y=values.values,
                marker=dict(
                    color=[asset_colors[asset] for asset in values.index],
                    line=dict(color="black", width=1)
                ),
                hovertemplate="%{x}<br>ES = %{y:.4f}<extra></extra>",
                name="ES"
            )
        ]
    )

    fig.update_layout(
        title=f"{result.method.value.title()} ES at {1 - result.alpha:.0%} confidence",
        xaxis_title="Series",
        yaxis_title="Expected Shortfall",
        template="simple_white",
        height=500,
        width=1000,
        showlegend=False
    )

    return _finish(fig, interactive, output_path)
