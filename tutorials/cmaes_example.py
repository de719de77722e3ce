"""Simple example script using CMA-ES."""
import pathlib

from covadapt import CMAESOptions, Restarter, RestartOptions, RestartStrategy, Weights
from covadapt.utils import set_logger_config
from covadapt.utils.benchmark_functions import get_function_search_space, parse_arguments

if __name__ == "__main__":
    print(
        "#####################################################\n"
        "# COVADAPT: Covariance Matrix Adaptation Evolution #\n"
        "#####################################################\n"
    )

    config = parse_arguments()

    set_logger_config(
        level=config.logging_level,  # Logging level
        log_file=config.log_file or f"./{pathlib.Path(__file__).stem}.log",  # Logging path
        log_to_stdout=True,  # Print log on stdout.
        colors=True,  # Use colors.
    )

    # Get callable function + search space.
    function, dimensions, (low, high) = get_function_search_space(config.function)
    if config.dimensions is not None:
        dimensions = config.dimensions
    step_size = config.step_size if config.step_size is not None else 0.2 * (high - low)

    if config.restart == "none":
        options = CMAESOptions(
            dimensions=dimensions,
            initial_mean=[(low + high) / 2 + (high - low) / 4] * dimensions,
            initial_step_size=step_size,
            population_size=config.pop_size,
            weights=Weights(config.weights),
            max_function_evals=config.max_evals,
            max_generations=config.max_generations,
            max_time=config.max_time,
            seed=config.seed,
            print_gap_evals=config.print_gap_evals,
        )
        result = options.build(function).run()
        print(f"Stopped with {sorted(str(r) for r in result.reasons)}.")
        print(f"Best individual: {result.overall_best}")
    else:
        run_options = {"weights": Weights(config.weights), "max_generations": config.max_generations}
        if config.pop_size is not None:
            run_options["population_size"] = config.pop_size
        restarter = Restarter(
            RestartOptions(
                dimensions=dimensions,
                search_range=(low, high),
                strategy=RestartStrategy(config.restart),
                max_function_evals=config.max_evals,
                max_time=config.max_time,
                max_runs=config.max_runs,
                seed=config.seed,
                initial_step_size=step_size,
                run_options=run_options,
            )
        )
        results = restarter.run(function)
        print(f"{results.runs} runs, {results.function_evals} function evaluations.")
        print(f"Best individual: {results.best}")
