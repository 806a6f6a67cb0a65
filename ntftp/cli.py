"""
ntftp CLI

Command-line entry point: parses the server and option extensions, then
opens the interactive prompt.

Usage:
    ntftp localhost              # Connect to localhost:69
    ntftp localhost:1234 -w 4    # Custom port and window size
    ntftp -b 256 10.0.0.2        # Smaller blocks

Once running:
    > get <remote> [<local>]
    > put <local> [<remote>]
"""

import asyncio
import logging

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from .config import ClientConfig, load_config
from .endpoint import TftpEndpoint
from .session import Session
from .shell import SessionLoop, Terminal, create_dispatcher
from .transfer import TransferController

console = Console()

EPILOG = """
\b
Once ntftp is running, it shows a prompt and recognizes the following
commands:
  > get <remote> [<local>]    Gets a file from the remote server.
  > put <local> [<remote>]    Puts a file to the remote server.

To quit the program press ctrl-c two times.

\b
Example:
  $ ntftp localhost -w 4 --blksize 256
  > get remote_file
  > get remote_file local_file
  > put path/to/local_file remote_file

By default this client sends some known option extensions trying to
achieve the best performance. If the remote server doesn't support
option extensions, it falls back to a pure RFC 1350 client.
"""


def setup_logging(verbose: bool = False, level: str = 'WARNING'):
    """Configure logging with rich output."""
    level = logging.DEBUG if verbose else getattr(logging, level, logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )
    # tftpy logs every packet at INFO
    if not verbose:
        logging.getLogger('tftpy').setLevel(logging.WARNING)


async def run_shell(config: ClientConfig):
    """Build the client from config and run the prompt until end of input."""
    session = Session()
    endpoint = TftpEndpoint(config)
    controller = TransferController(session, endpoint)
    dispatcher = create_dispatcher(controller)
    terminal = Terminal(dispatcher.names, console=console)
    controller.on_progress = terminal.progress

    loop = SessionLoop(session, dispatcher, terminal)
    await loop.run()


@click.command(epilog=EPILOG)
@click.argument('server', metavar='<host>[:<port>]')
@click.option('-b', '--blksize', type=int, metavar='SIZE',
              help='Sets the blksize option extension. Valid range: [8, 65464]. '
                   'Default is 1468, the size before IP fragmentation in Ethernet environments')
@click.option('-r', '--retries', type=int, metavar='NUM',
              help='Number of retries before finishing the transfer of the file due to '
                   'an unresponsive server or a massive packet loss')
@click.option('-t', '--timeout', type=int, metavar='MILLISECONDS',
              help='Sets the timeout option extension. Default is 3000ms')
@click.option('-w', '--windowsize', type=int, metavar='SIZE',
              help='Sets the windowsize option extension. Valid range: [1, 65535]. Default is 64')
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.version_option(package_name='ntftp')
def cli(server, blksize, retries, timeout, windowsize, verbose):
    """Interactive TFTP client. Default port is 69."""
    try:
        config = load_config(
            server,
            block_size=blksize,
            retries=retries,
            timeout=timeout,
            window_size=windowsize,
        )
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="'<host>[:<port>]'")

    setup_logging(verbose, config.log_level)

    console.print(Panel.fit(
        f"[bold green]ntftp[/bold green] → [cyan]{config.server}[/cyan]\n"
        f"[dim]blksize {config.block_size}, windowsize {config.window_size}, "
        f"timeout {config.timeout}ms, retries {config.retries}[/dim]",
    ))

    asyncio.run(run_shell(config))


def main():
    cli()


if __name__ == '__main__':
    main()
