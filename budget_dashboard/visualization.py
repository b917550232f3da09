"""Plotly visualisation helpers for the budget dashboard.

Each function accepts a frame produced by :mod:`chart_data` or
:mod:`budgets` and returns a `plotly.graph_objects.Figure` that Streamlit
renders via ``st.plotly_chart``.  Empty inputs produce a titled, empty
figure instead of raising.
"""

from __future__ import annotations

from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from .colors import color_shade, default_color, expense_colors, palette_for

POSITIVE_COLOR = "#2A9D8F"
NEGATIVE_COLOR = "#D00000"


def _empty_figure(title: str = "No data to display") -> go.Figure:
    fig = go.Figure()
    fig.update_layout(title=title)
    return fig


def create_stacked_area_chart(
    cumulative: pd.DataFrame,
    end_index: int,
    palette: Sequence[str] = expense_colors,
    title: str | None = None,
) -> go.Figure:
    """Stacked cumulative totals with the projected weeks shaded.

    Parameters
    ----------
    cumulative : pandas.DataFrame
        Wide frame from :func:`chart_data.merge_cumulative`, indexed by week
        start with one column per category.
    end_index : int
        Last row holding actual (not projected) values.  Rows after it are
        drawn over a shaded background.
    palette : sequence of str
        Colours assigned to categories in column order.
    title : str, optional
        Chart title.

    Returns
    -------
    plotly.graph_objects.Figure
        Stacked area chart.
    """
    if cumulative.empty or len(cumulative.columns) == 0:
        return _empty_figure()
    colors = palette_for(list(cumulative.columns), palette)
    fig = go.Figure()
    for category in cumulative.columns:
        fig.add_trace(go.Scatter(
            x=cumulative.index,
            y=cumulative[category],
            name=str(category),
            mode="lines",
            stackgroup="one",
            line={"color": colors[category], "width": 1},
            fillcolor=colors[category],
        ))

    last = len(cumulative.index) - 1
    if end_index < last:
        start = cumulative.index[max(end_index, 0)]
        fig.add_vrect(
            x0=start,
            x1=cumulative.index[last],
            fillcolor="#888888",
            opacity=0.15,
            line_width=0,
        )
        fig.add_annotation(
            x=start, y=1, xref="x", yref="paper",
            text="Projected", showarrow=False, xanchor="left", yanchor="bottom",
        )
    fig.update_layout(
        title=title or "Cumulative totals",
        xaxis_title="Week",
        yaxis_title="Amount ($)",
        hovermode="x unified",
    )
    return fig


def create_stacked_bar_chart(
    grouped: pd.DataFrame,
    palette: Sequence[str] = expense_colors,
    title: str | None = None,
) -> go.Figure:
    """Monthly totals per category stacked into one bar per month.

    ``grouped`` is a long frame with ``date``, ``category`` and ``value``.
    """
    if grouped.empty:
        return _empty_figure()
    categories = list(pd.unique(grouped["category"]))
    fig = px.bar(
        grouped,
        x="date",
        y="value",
        color="category",
        category_orders={"category": categories},
        color_discrete_map=palette_for(categories, palette),
    )
    fig.update_layout(
        title=title or "Monthly totals",
        xaxis_title="Month",
        yaxis_title="Amount ($)",
        barmode="stack",
        legend_title_text="Category",
    )
    fig.update_xaxes(dtick="M1", tickformat="%b %Y")
    return fig


def create_savings_chart(savings: pd.DataFrame, threshold: float = 0.0, title: str | None = None) -> go.Figure:
    """Running savings with the area above/below ``threshold`` filled.

    ``savings`` has ``date`` and ``value`` columns as returned by
    :func:`chart_data.savings_series`.
    """
    if savings.empty:
        return _empty_figure()
    values = savings["value"].to_numpy(dtype=float)
    above = np.where(values >= threshold, values, threshold)
    below = np.where(values < threshold, values, threshold)

    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=savings["date"], y=np.full(len(values), threshold),
        mode="lines", line={"width": 0}, showlegend=False, hoverinfo="skip",
    ))
    fig.add_trace(go.Scatter(
        x=savings["date"], y=above, name="Surplus", mode="lines",
        line={"width": 0}, fill="tonexty", fillcolor=color_shade(POSITIVE_COLOR, 60),
        hoverinfo="skip",
    ))
    fig.add_trace(go.Scatter(
        x=savings["date"], y=np.full(len(values), threshold),
        mode="lines", line={"width": 0}, showlegend=False, hoverinfo="skip",
    ))
    fig.add_trace(go.Scatter(
        x=savings["date"], y=below, name="Deficit", mode="lines",
        line={"width": 0}, fill="tonexty", fillcolor=color_shade(NEGATIVE_COLOR, 60),
        hoverinfo="skip",
    ))
    fig.add_trace(go.Scatter(
        x=savings["date"], y=values, name="Savings", mode="lines",
        line={"color": "#333333", "width": 2},
    ))
    fig.add_hline(y=threshold, line_dash="dash", line_color="#888888")
    fig.update_layout(
        title=title or "Savings over time",
        xaxis_title="Date",
        yaxis_title="Savings ($)",
    )
    return fig


def create_allocation_pie_chart(breakdown: pd.DataFrame, title: str | None = None) -> go.Figure:
    """Pie of allocations from :func:`budgets.allocation_breakdown`."""
    if breakdown.empty or breakdown["Allocation"].sum() <= 0:
        return _empty_figure()
    color_map: Dict[str, str] = dict(zip(breakdown["Category"], breakdown["Color"].fillna(default_color)))
    fig = px.pie(
        breakdown,
        names="Category",
        values="Allocation",
        color="Category",
        color_discrete_map=color_map,
    )
    fig.update_traces(textinfo="label+percent")
    fig.update_layout(title=title or "Budget allocation")
    return fig


def create_budget_usage_chart(usage: pd.DataFrame, title: Optional[str] = None) -> go.Figure:
    """Horizontal bars of spend against allocation per category.

    Categories over their allocation are drawn in red.
    """
    if usage.empty:
        return _empty_figure()
    used_colors = np.where(usage["Over Budget"].to_numpy(dtype=bool), NEGATIVE_COLOR, usage["Color"].fillna(default_color).to_numpy())
    fig = go.Figure()
    fig.add_trace(go.Bar(
        y=usage["Category"], x=usage["Allocation"], name="Allocation",
        orientation="h", marker={"color": "#D9D9D9"},
    ))
    fig.add_trace(go.Bar(
        y=usage["Category"], x=usage["Used"], name="Used",
        orientation="h", marker={"color": list(used_colors)},
    ))
    fig.update_layout(
        title=title or "Budget usage",
        xaxis_title="Amount ($)",
        barmode="overlay",
    )
    return fig
