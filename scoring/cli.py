"""
PlayOps validator CLI.

Usage:
    python -m scoring.cli validate --answer "client happiness" --accept "customer satisfaction; client happiness"
    python -m scoring.cli validate --questions answers.json [--json]
    python -m scoring.cli classify --accuracy 0.96 --time 70 --edge 0.9 --sessions 3
    python -m scoring.cli stress-test [--scenarios scenarios.jsonl] [--json]
    python -m scoring.cli simulate [--questions key.json] [--answer-at 30] [--submit-at 150] [--log results.jsonl]
    python -m scoring.cli serve [--host 127.0.0.1] [--port 8000]
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from eval.scenarios import load_scenarios
from eval.stress_test import failed_scenarios, run_stress_test
from gameplay.clock import FakeClock
from gameplay.controller import RoundController, run_until_done
from gameplay.phases import Stage, default_session_config
from gameplay.result_log import count_completed_sessions, log_result
from scoring.classifier import Thresholds, classify, is_passing, xp_for
from scoring.matching import expand_answers
from scoring.models import QuestionSpec, SessionMetrics
from scoring.validator import validate_session

DEMO_QUESTIONS = [
    {'question_id': 'q1', 'question': 'Which KPI tracks money coming in?',
     'acceptable_answers': ['revenue; income; sales']},
    {'question_id': 'q2', 'question': 'What should the team protect during a crisis?',
     'acceptable_answers': ['customer satisfaction', 'client happiness']},
    {'question_id': 'q3', 'question': 'How do you keep users coming back?',
     'acceptable_answers': ['improve customer retention rate']},
]


def _load_json_or_jsonl(path: Path):
    text = Path(path).read_text(encoding='utf-8').strip()
    if text.startswith('['):
        return json.loads(text)
    return [json.loads(line) for line in text.splitlines() if line.strip()]


def cmd_validate(args):
    """Validate one answer or a batch file."""
    if args.questions:
        items = _load_json_or_jsonl(args.questions)
    elif args.answer is not None and args.accept:
        items = [{'question': args.question, 'userAnswer': args.answer, 'correctAnswers': args.accept}]
    else:
        print("Provide --questions FILE or --answer with at least one --accept.")
        sys.exit(2)

    summary = validate_session(items)
    if args.json:
        print(json.dumps(summary.to_dict(), indent=2, ensure_ascii=False))
        return

    for i, d in enumerate(summary.details, 1):
        mark = 'OK ' if d.is_correct else 'X  '
        print(f"  {mark}{i}. {d.question[:60] or '(question)'}")
        print(f"       answer={d.user_answer!r}  reason={d.reason}  ({d.detail})")
    print(f"\nAccuracy: {summary.correct_answers}/{summary.total_questions} ({summary.accuracy_pct}%)")


def cmd_classify(args):
    """Classify one set of session metrics."""
    overrides = {}
    if args.thresholds:
        overrides = json.loads(Path(args.thresholds).read_text(encoding='utf-8'))
    if args.time_limit is not None:
        thresholds = Thresholds.for_time_limit(args.time_limit).overlay(overrides)
    else:
        thresholds = Thresholds.from_dict(overrides)

    metrics = SessionMetrics(
        accuracy=args.accuracy,
        elapsed_s=args.time,
        edge_case_score=args.edge,
        session_count=args.sessions,
        timed_out=args.timed_out,
    )
    level = classify(metrics, thresholds)
    print(f"Level {int(level)}: {level.label}")
    print(f"  passed={is_passing(level)}  xp({args.mode})={xp_for(level, args.mode)}")
    print(f"  thresholds: accuracy>={thresholds.mastery_accuracy}/{thresholds.proficient_accuracy}  "
          f"time<={thresholds.tight_time_limit_s}/{thresholds.time_limit_s}s  "
          f"edge>={thresholds.edge_case_threshold}  sessions>={thresholds.sessions_required}")


def cmd_stress_test(args):
    """Run the stress-test battery. Exit status 1 when any scenario diverges."""
    scenarios = load_scenarios(args.scenarios) if args.scenarios else None
    report = run_stress_test(scenarios)
    if args.json:
        print(json.dumps(report, indent=2, ensure_ascii=False))
    else:
        for s in report['scenarios']:
            mark = 'PASS' if s['passed'] else 'FAIL'
            print(f"  {mark}  {s['label']:<32} expected={s['expected']:>3}%  actual={s['actual']:>3}%")
        print(f"\nOverall: {report['overall_status']} "
              f"({report['passed_count']} passed, {report['failed_count']} failed)")
        for f in failed_scenarios(report):
            print(f"  diverged: {f['label']} (delta {f['delta']:+d})")
    if report['overall_status'] != 'passed':
        sys.exit(1)


def cmd_simulate(args):
    """Play a scripted session on a fake clock and log the result."""
    raw = _load_json_or_jsonl(args.questions) if args.questions else DEMO_QUESTIONS
    questions = [QuestionSpec.from_dict(q, i) for i, q in enumerate(raw)]
    config = default_session_config()
    clock = FakeClock()
    log_path = Path(args.log)
    prior = count_completed_sessions(log_path, args.player, args.validator)

    controller = RoundController(
        config,
        questions,
        clock,
        session_count=prior + 1,
        mode=args.mode,
        rng_seed=args.seed,
    )
    answered = []

    def on_tick(c):
        elapsed = c.state.elapsed_s
        if not answered and elapsed >= args.answer_at:
            for q in c.questions:
                expanded = expand_answers(q.acceptable_answers)
                c.answer(q.question_id, '' if args.blank or not expanded else expanded[0])
            answered.append(elapsed)
        if c.state.stage is Stage.EDGE_CASE:
            c.recover(args.recover_action, args.recover_score)
            c.continue_after_edge_case()
        if args.submit_at is not None and elapsed >= args.submit_at:
            c.submit()

    result = run_until_done(controller, sleep_fn=clock.advance, on_tick=on_tick)
    if result is None:
        print("Session ended without a result.")
        sys.exit(1)

    record = log_result(log_path, result, args.player, args.validator, mode=args.mode)
    for kind, at in controller.transitions:
        print(f"  {at:>6.0f}s  {kind}")
    print(f"\nLevel {record['level']}: {record['level_label']}  "
          f"(accuracy {record['accuracy_pct']}%, {record['time_s']:.0f}s, "
          f"edge={record['edge_score']}, session #{record['session_count']})")
    print(f"  passed={record['passed']}  xp={record['xp']}  ended by {record['end_reason']}")
    print("  indicators: " + ", ".join(f"{k}={v:.1f}" for k, v in controller.indicators.items()))
    print(f"Logged to {log_path}")


def cmd_serve(args):
    """Run the HTTP API."""
    import uvicorn
    uvicorn.run("server.app:app", host=args.host, port=args.port, reload=args.reload)


def main():
    parser = argparse.ArgumentParser(description='PlayOps competency validator')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    validate_parser = subparsers.add_parser('validate', help='Validate answers')
    validate_parser.add_argument('--questions', type=Path, default=None,
                                 help='JSON array or JSONL of {question, userAnswer, correctAnswers}')
    validate_parser.add_argument('--question', default='', help='Question text (single mode)')
    validate_parser.add_argument('--answer', default=None, help='User answer (single mode)')
    validate_parser.add_argument('--accept', action='append', default=[],
                                 help='Acceptable answer; repeat or join with ; , |')
    validate_parser.add_argument('--json', action='store_true', help='Print JSON')

    classify_parser = subparsers.add_parser('classify', help='Classify session metrics')
    classify_parser.add_argument('--accuracy', type=float, required=True, help='Fraction 0..1')
    classify_parser.add_argument('--time', type=float, required=True, help='Elapsed seconds')
    classify_parser.add_argument('--edge', type=float, default=None, help='Edge-case score 0..1')
    classify_parser.add_argument('--sessions', type=int, default=1, help='Completed sessions including this one')
    classify_parser.add_argument('--mode', choices=['training', 'testing'], default='training')
    classify_parser.add_argument('--time-limit', type=float, default=None,
                                 help='Derive time and tight limits from this limit')
    classify_parser.add_argument('--thresholds', type=Path, default=None, help='JSON file of threshold overrides')
    classify_parser.add_argument('--timed-out', action='store_true', help='The clock ran out before submission')

    stress_parser = subparsers.add_parser('stress-test', help='Run the validator stress test')
    stress_parser.add_argument('--scenarios', type=Path, default=None, help='JSONL scenario fixtures')
    stress_parser.add_argument('--json', action='store_true', help='Print the full report as JSON')

    sim_parser = subparsers.add_parser('simulate', help='Play a scripted session on a fake clock')
    sim_parser.add_argument('--questions', type=Path, default=None, help='JSON answer key (default: demo set)')
    sim_parser.add_argument('--player', default='player-1')
    sim_parser.add_argument('--validator', default='demo')
    sim_parser.add_argument('--mode', choices=['training', 'testing'], default='training')
    sim_parser.add_argument('--answer-at', type=float, default=30.0, help='Seconds into the session to answer')
    sim_parser.add_argument('--blank', action='store_true', help='Submit blank answers')
    sim_parser.add_argument('--submit-at', type=float, default=None, help='Submit early at this many seconds')
    sim_parser.add_argument('--recover-action', default='reallocate_budget')
    sim_parser.add_argument('--recover-score', type=float, default=1.0)
    sim_parser.add_argument('--seed', type=int, default=0, help='Indicator RNG seed')
    sim_parser.add_argument('--log', default='results/session_results.jsonl', help='Result log path')

    serve_parser = subparsers.add_parser('serve', help='Run the HTTP API (uvicorn)')
    serve_parser.add_argument('--host', default='127.0.0.1')
    serve_parser.add_argument('--port', type=int, default=8000)
    serve_parser.add_argument('--reload', action='store_true')

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )

    if args.command == 'validate':
        cmd_validate(args)
    elif args.command == 'classify':
        cmd_classify(args)
    elif args.command == 'stress-test':
        cmd_stress_test(args)
    elif args.command == 'simulate':
        cmd_simulate(args)
    elif args.command == 'serve':
        cmd_serve(args)
    else:
        parser.print_help()


if __name__ == '__main__':
    main()
