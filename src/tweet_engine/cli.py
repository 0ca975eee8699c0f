"""CLI commands using Typer."""

import asyncio
import base64
import logging
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.table import Table

from tweet_engine import __version__
from tweet_engine.config import Settings, load_config
from tweet_engine.exceptions import ConfigError
from tweet_engine.generation import ProviderRegistry, TweetGenerator
from tweet_engine.generation.selector import has_any_credential, has_credential, select_provider

app = typer.Typer(
    name="tweet-engine",
    help="Multi-provider LLM tweet generator.",
    no_args_is_help=True,
)
console = Console()

# Exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_API_ERROR = 3

StyleOption = Annotated[
    str, typer.Option("--style", "-s", help="viral, professional, casual or thread")
]
HashtagsOption = Annotated[bool, typer.Option("--hashtags/--no-hashtags", help="Add hashtags")]
EmojisOption = Annotated[bool, typer.Option("--emojis/--no-emojis", help="Add emojis")]
ToneOption = Annotated[
    str | None, typer.Option("--tone", help="formal, neutral, casual or playful")
]
LengthOption = Annotated[str | None, typer.Option("--length", "-l", help="short, medium or long")]
TemperatureOption = Annotated[
    float | None, typer.Option("--temperature", help="Sampling temperature (0-2)")
]
ConfigOption = Annotated[Path | None, typer.Option("--config", "-c", help="Config file")]


def setup_logging(verbosity: int) -> None:
    """Configure logging based on verbosity level."""
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity >= 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def get_config(config_path: Path | None = None) -> Settings:
    """Load configuration with error handling."""
    try:
        return load_config(config_path)
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(EXIT_CONFIG_ERROR) from None


def get_generator(settings: Settings, vision: bool = False) -> TweetGenerator:
    """Build a generator, exiting early when no provider key is configured."""
    registry = ProviderRegistry()
    providers = registry.vision_providers if vision else registry.text_providers
    if not has_any_credential(settings.credentials(), providers):
        console.print(f"[red]Error:[/red] {registry.setup_guidance(vision=vision)}")
        raise typer.Exit(EXIT_CONFIG_ERROR)

    generator = TweetGenerator.from_settings(settings, registry=registry)
    name = generator.current_vision_provider() if vision else generator.current_provider()
    console.print(f"[dim]Provider: {name}[/dim]")
    return generator


def advanced_settings(
    tone: str | None, length: str | None, temperature: float | None
) -> dict[str, Any] | None:
    """Collect advanced options, or None when none were given."""
    options = {"tone": tone, "length": length, "temperature": temperature}
    options = {k: v for k, v in options.items() if v is not None}
    return options or None


def print_tweet(tweet: str, label: str | None = None) -> None:
    char_count = len(tweet)
    color = "green" if char_count <= 280 else "red"
    header = f"[bold]{label}[/bold] " if label else ""
    console.print(f"{header}[{color}]{char_count} chars[/{color}]")
    console.print(f"  {tweet}")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"tweet-engine version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase verbosity (-v for INFO, -vv for DEBUG).",
    ),
) -> None:
    """Tweet Engine - generate tweets with whichever LLM you have a key for."""
    setup_logging(verbose)


@app.command()
def generate(
    topic: Annotated[str, typer.Argument(help="What the tweet is about")],
    style: StyleOption = "viral",
    hashtags: HashtagsOption = True,
    emojis: EmojisOption = True,
    mood: Annotated[str | None, typer.Option("--mood", "-m", help="Emotional angle")] = None,
    audience: Annotated[
        str | None, typer.Option("--audience", "-a", help="Target audience")
    ] = None,
    hook: Annotated[str | None, typer.Option("--hook", help="Opening line to start with")] = None,
    template: Annotated[
        str | None, typer.Option("--template", help="Template the tweet should follow")
    ] = None,
    general: Annotated[
        bool, typer.Option("--general", help="Don't write in first person")
    ] = False,
    tone: ToneOption = None,
    length: LengthOption = None,
    temperature: TemperatureOption = None,
    config_path: ConfigOption = None,
) -> None:
    """Generate a single tweet about a topic."""
    settings = get_config(config_path)
    generator = get_generator(settings)

    request = {
        "topic": topic,
        "style": style,
        "include_hashtags": hashtags,
        "include_emojis": emojis,
        "mood": mood,
        "audience": audience,
        "hook": hook,
        "template": template,
        "use_template": template is not None,
        "personal": not general,
        "advanced_settings": advanced_settings(tone, length, temperature),
    }

    async def run():
        async with generator:
            return await generator.generate(request)

    console.print("[blue]Generating tweet...[/blue]")
    result = asyncio.run(run())

    if result.error:
        console.print(f"[red]Generation failed:[/red] {result.error}")
        raise typer.Exit(EXIT_API_ERROR)

    print_tweet(result.tweet)
    console.print(f"\n[dim]Post it: {generator.intent_url(result.tweet)}[/dim]")


@app.command()
def batch(
    topic: Annotated[str, typer.Argument(help="What the tweets are about")],
    count: Annotated[int | None, typer.Option("--count", "-n", help="Variations (2-5)")] = None,
    style: StyleOption = "viral",
    hashtags: HashtagsOption = True,
    emojis: EmojisOption = True,
    general: Annotated[
        bool, typer.Option("--general", help="Don't write in first person")
    ] = False,
    tone: ToneOption = None,
    length: LengthOption = None,
    temperature: TemperatureOption = None,
    config_path: ConfigOption = None,
) -> None:
    """Generate several variations of a tweet in one call."""
    settings = get_config(config_path)
    generator = get_generator(settings)

    request = {
        "topic": topic,
        "style": style,
        "include_hashtags": hashtags,
        "include_emojis": emojis,
        "personal": not general,
        "batch_count": count or settings.generation.batch_count,
        "advanced_settings": advanced_settings(tone, length, temperature),
    }

    async def run():
        async with generator:
            return await generator.generate_batch(request)

    console.print("[blue]Generating variations...[/blue]")
    result = asyncio.run(run())

    if result.error:
        console.print(f"[red]Batch generation failed:[/red] {result.error}")
        raise typer.Exit(EXIT_API_ERROR)

    console.print(f"\n[green]Generated {len(result.tweets)} tweets:[/green]\n")
    for i, tweet in enumerate(result.tweets, 1):
        print_tweet(tweet, label=f"Tweet {i}")
        console.print()


@app.command()
def stream(
    topic: Annotated[str, typer.Argument(help="What the tweet is about")],
    style: StyleOption = "viral",
    hashtags: HashtagsOption = True,
    emojis: EmojisOption = True,
    tone: ToneOption = None,
    length: LengthOption = None,
    temperature: TemperatureOption = None,
    config_path: ConfigOption = None,
) -> None:
    """Generate a tweet, printing text as it arrives."""
    settings = get_config(config_path)
    generator = get_generator(settings)

    request = {
        "topic": topic,
        "style": style,
        "include_hashtags": hashtags,
        "include_emojis": emojis,
        "advanced_settings": advanced_settings(tone, length, temperature),
    }

    async def run():
        async with generator:
            tweet_stream = generator.stream(request)
            async for delta in tweet_stream:
                console.print(delta, end="", markup=False, highlight=False)
            console.print()
            return tweet_stream

    result = asyncio.run(run())

    if result.error:
        console.print(f"[red]Streaming failed:[/red] {result.error}")
        raise typer.Exit(EXIT_API_ERROR)

    console.print()
    print_tweet(result.final_text, label="Final")


@app.command()
def vision(
    image: Annotated[Path, typer.Argument(help="JPEG image to tweet about")],
    context: Annotated[
        str | None, typer.Option("--context", help="Extra context about the image")
    ] = None,
    style: StyleOption = "viral",
    hashtags: HashtagsOption = True,
    emojis: EmojisOption = True,
    length: LengthOption = None,
    config_path: ConfigOption = None,
) -> None:
    """Describe an image and write a tweet about it."""
    if not image.exists():
        console.print(f"[red]Error:[/red] Image not found: {image}")
        raise typer.Exit(EXIT_ERROR)

    settings = get_config(config_path)
    generator = get_generator(settings, vision=True)

    request = {
        "image_base64": base64.b64encode(image.read_bytes()).decode("ascii"),
        "style": style,
        "include_hashtags": hashtags,
        "include_emojis": emojis,
        "custom_context": context,
        "advanced_settings": advanced_settings(None, length, None),
    }

    async def run():
        async with generator:
            return await generator.analyze_image(request)

    console.print("[blue]Analyzing image...[/blue]")
    result = asyncio.run(run())

    if result.error:
        console.print(f"[red]Image analysis failed:[/red] {result.error}")
        raise typer.Exit(EXIT_API_ERROR)

    console.print(f"[cyan]Description:[/cyan] {result.description}")
    if result.location:
        console.print(f"[cyan]Location:[/cyan] {result.location}")
    print_tweet(result.tweet)


@app.command()
def providers(config_path: ConfigOption = None) -> None:
    """Show providers in priority order and which one is active."""
    settings = get_config(config_path)
    registry = ProviderRegistry()
    credentials = settings.credentials()

    for title, provider_list in (
        ("Text providers", registry.text_providers),
        ("\nVision providers", registry.vision_providers),
    ):
        active = (
            select_provider(credentials, provider_list)
            if has_any_credential(credentials, provider_list)
            else None
        )
        table = Table(title=title)
        table.add_column("Provider", style="cyan", no_wrap=True)
        table.add_column("Model")
        table.add_column("Key")
        table.add_column("Streaming")

        for provider in provider_list:
            name = f"{provider.id} *" if provider is active else provider.id
            key_status = (
                "[green]set[/green]"
                if has_credential(credentials, provider)
                else f"[dim]{provider.credential_key}[/dim]"
            )
            table.add_row(
                name,
                provider.model_id,
                key_status,
                "yes" if provider.supports_streaming else "no",
            )
        console.print(table)

    if not has_any_credential(credentials, registry.text_providers):
        console.print(f"\n[yellow]{registry.setup_guidance()}[/yellow]")


if __name__ == "__main__":
    app()
