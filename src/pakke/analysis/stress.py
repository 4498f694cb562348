"""
Stress classification of sessions and its association with milestones.

A session is "stressy" for a subject when, in any focus category
(default: Avoidance, Displacement), the subject spent more time in state
behaviors, or showed point behaviors more often, than its own mean for
that category.

Stats: per-subject logistic regression (statsmodels GLM, binomial family,
logit link) of was_stressy ~ session + milestone.
"""

import logging
import warnings
from typing import Dict, Iterable, Optional

import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf
from statsmodels.tools.sm_exceptions import PerfectSeparationError, PerfectSeparationWarning

from pakke.config import DEFAULT_FOCUS_CATEGORIES

logger = logging.getLogger(__name__)

STRESS_COLUMNS = ["name", "subject_id", "obs_id", "session", "milestone_ids", "was_stressy"]


def _above_subject_mean(
    per_observation: pd.DataFrame,
    value_col: str,
    observations_df: pd.DataFrame
) -> pd.DataFrame:
    obs = observations_df[["obs_id", "subject_id", "session", "milestone_ids"]]
    joined = per_observation.merge(obs, on="obs_id", how="inner")
    subject_means = joined.groupby(["subject_id", "category_id"])[value_col].transform("mean")
    joined["was_stressy"] = joined[value_col] > subject_means
    return joined[["obs_id", "subject_id", "session", "milestone_ids", "category_id", "was_stressy"]]


def were_sessions_stressy(
    state_cats_budget: pd.DataFrame,
    point_cats_counts: pd.DataFrame,
    observations_df: pd.DataFrame,
    categories_df: pd.DataFrame,
    subjects_df: pd.DataFrame,
    focus_categories: Optional[Iterable[str]] = None
) -> pd.DataFrame:
    """
    Classify each observed session as stressy or not.

    Args:
        state_cats_budget: DataFrame[obs_id, category_id, prop_time_spent]
        point_cats_counts: DataFrame[obs_id, category_id, count, frequency]
        focus_categories: Category names considered stress indicators

    Returns:
        DataFrame[name, subject_id, obs_id, session, milestone_ids, was_stressy],
        one row per session, ordered by name and session
    """
    if focus_categories is None:
        focus_categories = DEFAULT_FOCUS_CATEGORIES

    state_flags = _above_subject_mean(state_cats_budget, "prop_time_spent", observations_df)
    point_flags = _above_subject_mean(point_cats_counts, "frequency", observations_df)

    flags = (
        pd.concat([state_flags, point_flags], ignore_index=True)
        .merge(categories_df.rename(columns={"id": "category_id"}), on="category_id")
        .merge(subjects_df[["id", "name"]].rename(columns={"id": "subject_id"}), on="subject_id")
    )
    flags = flags[flags["category"].isin(list(focus_categories))]

    if flags.empty:
        return pd.DataFrame(columns=STRESS_COLUMNS)

    stress = flags.groupby(["name", "subject_id", "obs_id", "session"], as_index=False, sort=False).agg(
        milestone_ids=("milestone_ids", "first"),
        was_stressy=("was_stressy", "any"),
    )
    return stress.sort_values(["name", "session"]).reset_index(drop=True)[STRESS_COLUMNS]


def common_stressors(stress_df: pd.DataFrame, milestones_df: Optional[pd.DataFrame] = None) -> pd.DataFrame:
    """
    Milestones consistently associated (or never associated) with stress.

    A milestone is a stressor (stressed=True) when every session it occurred
    in was stressy, and a non-stressor (stressed=False) when none was.
    Milestones with mixed sessions are left out.

    Returns:
        DataFrame[milestone_id, (milestone), stressed, n_sessions]
    """
    with_milestones = stress_df[stress_df["milestone_ids"].notna()]
    flattened = with_milestones.explode("milestone_ids").rename(columns={"milestone_ids": "milestone_id"})
    flattened = flattened[flattened["milestone_id"].notna()]

    if flattened.empty:
        columns = ["milestone_id", "stressed", "n_sessions"]
        if milestones_df is not None:
            columns.insert(1, "milestone")
        return pd.DataFrame(columns=columns)

    flattened["milestone_id"] = flattened["milestone_id"].astype(int)
    per_milestone = flattened.groupby("milestone_id", as_index=False).agg(
        all_stressed=("was_stressy", "all"),
        any_stressed=("was_stressy", "any"),
        n_sessions=("was_stressy", "size"),
    )

    consistent = per_milestone[per_milestone["all_stressed"] | ~per_milestone["any_stressed"]].copy()
    consistent["stressed"] = consistent["all_stressed"]
    result = consistent[["milestone_id", "stressed", "n_sessions"]].reset_index(drop=True)

    if milestones_df is not None:
        labels = milestones_df.rename(columns={"id": "milestone_id"})
        result = result.merge(labels, on="milestone_id", how="left")
        result = result[["milestone_id", "milestone", "stressed", "n_sessions"]]

    return result.sort_values(["stressed", "milestone_id"], ascending=[False, True]).reset_index(drop=True)


def stress_model_frame(stress_df: pd.DataFrame) -> pd.DataFrame:
    """Model inputs: name, session, milestone (bool), was_stressy (0/1)."""
    return pd.DataFrame({
        "name": stress_df["name"].to_numpy(),
        "session": stress_df["session"].astype(float).to_numpy(),
        "milestone": stress_df["milestone_ids"].notna().to_numpy(),
        "was_stressy": stress_df["was_stressy"].astype(int).to_numpy(),
    })


def fit_stress_models(stress_df: pd.DataFrame) -> Dict[str, object]:
    """
    Fit was_stressy ~ session + milestone per subject.

    Subjects whose outcome has a single class, or whose fit fails
    (perfect separation, singular design), are logged and skipped. The
    milestone term is dropped for subjects where it is constant.

    Returns:
        subject name -> fitted statsmodels GLMResults
    """
    model_df = stress_model_frame(stress_df)
    models = {}

    for name, group in model_df.groupby("name", sort=True):
        if group["was_stressy"].nunique() < 2:
            logger.warning(f"Skipping stress model for {name}: outcome has a single class")
            continue

        formula = "was_stressy ~ session"
        if group["milestone"].nunique() > 1:
            formula += " + milestone"

        try:
            with warnings.catch_warnings():
                warnings.simplefilter("error", PerfectSeparationWarning)
                result = smf.glm(
                    formula,
                    data=group,
                    family=sm.families.Binomial(),
                ).fit()
        except (np.linalg.LinAlgError, ValueError) as e:
            logger.warning(f"Stress model for {name} failed: {e}")
            continue
        except (PerfectSeparationError, PerfectSeparationWarning) as e:
            logger.warning(f"Stress model for {name} failed (perfect separation): {e}")
            continue

        models[name] = result

    return models


def stress_models_table(models: Dict[str, object]) -> pd.DataFrame:
    """Coefficient table of fitted stress models."""
    rows = []
    for name, result in models.items():
        for term in result.params.index:
            rows.append({
                "name": name,
                "term": term,
                "coef": float(result.params[term]),
                "std_err": float(result.bse[term]),
                "z": float(result.tvalues[term]),
                "p_value": float(result.pvalues[term]),
                "n_sessions": int(result.nobs),
            })
    return pd.DataFrame(rows, columns=["name", "term", "coef", "std_err", "z", "p_value", "n_sessions"])
