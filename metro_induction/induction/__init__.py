"""
Induction engine: turns fleet facts into a ranked nightly induction plan and
tunes the scoring penalties from current fleet statistics.

Modules
-------
scorer   : TrainsetScore dataclass + score_trainset(): pure, no DB or I/O.
ranker   : InductionRecommendation dataclass + determine_decision() +
           build_reasoning() + rank_recommendations().
tuner    : TuningCounters / TuningResult + tune_penalties(): pure arithmetic.
service  : InductionService: the boundary operations, wired over repositories.
reporter : write_plan_csv() + write_plan_json(): file output.
"""
