from aiohttp import (
    ClientResponseError,
    ClientSession,
    ClientTimeout,
    BasicAuth
)
from aiohttp_socks import ProxyConnector
from fake_useragent import FakeUserAgent
from dataclasses import dataclass, field
from datetime import datetime
from colorama import *
import asyncio, signal, shutil, tempfile, json, re, os, pytz

wib = pytz.timezone(os.getenv("TIMEZONE", "Asia/Jakarta"))

@dataclass
class Account:
    line: int
    access_token: str
    refresh_token: str
    unique_ids: list = field(default_factory=list)

class MeshChain:
    def __init__(self) -> None:
        self.BASE_API = os.getenv("MESH_BASE_API", "https://api.meshchain.ai/meshmain")
        self.IP_API = "https://api.ipify.org?format=json"
        self.PROXY_FILE = os.getenv("PROXY_FILE", "proxy.txt")
        self.TOKEN_FILE = os.getenv("TOKEN_FILE", "token.txt")
        self.ID_FILE = os.getenv("UNIQUE_ID_FILE", "unique_id.txt")
        # Claim only above this estimate; unit is whatever the API reports.
        self.CLAIM_THRESHOLD = float(os.getenv("CLAIM_THRESHOLD", "10"))
        self.LOOP_DELAY = int(os.getenv("LOOP_DELAY", "60"))
        self.REQUEST_TIMEOUT = int(os.getenv("REQUEST_TIMEOUT", "60"))
        self.HEADERS = {}
        self.proxies = []
        self.proxy_index = 0
        self.stop_event = asyncio.Event()

    def log(self, message):
        print(
            f"{Fore.CYAN + Style.BRIGHT}[ {datetime.now().astimezone(wib).strftime('%x %X %Z')} ]{Style.RESET_ALL}"
            f"{Fore.WHITE + Style.BRIGHT} | {Style.RESET_ALL}{message}",
            flush=True
        )

    def log_status(self, action, status, message="", error=None):
        if status == "success":
            self.log(
                f"{Fore.CYAN+Style.BRIGHT}Action :{Style.RESET_ALL}"
                f"{Fore.WHITE+Style.BRIGHT} {action} {Style.RESET_ALL}"
                f"{Fore.CYAN+Style.BRIGHT}Status :{Style.RESET_ALL}"
                f"{Fore.GREEN+Style.BRIGHT} Success {Style.RESET_ALL}"
                f"{(Fore.MAGENTA+Style.BRIGHT + '- ' + Style.RESET_ALL + Fore.WHITE+Style.BRIGHT + message + Style.RESET_ALL) if message else ''}"
            )
        elif status == "failed":
            self.log(
                f"{Fore.CYAN+Style.BRIGHT}Action :{Style.RESET_ALL}"
                f"{Fore.WHITE+Style.BRIGHT} {action} {Style.RESET_ALL}"
                f"{Fore.CYAN+Style.BRIGHT}Status :{Style.RESET_ALL}"
                f"{Fore.RED+Style.BRIGHT} Failed {Style.RESET_ALL}"
                f"{Fore.MAGENTA+Style.BRIGHT}-{Style.RESET_ALL}"
                f"{Fore.YELLOW+Style.BRIGHT} {str(error)} {Style.RESET_ALL}"
            )
        elif status == "retry":
            self.log(
                f"{Fore.CYAN+Style.BRIGHT}Action :{Style.RESET_ALL}"
                f"{Fore.WHITE+Style.BRIGHT} {action} {Style.RESET_ALL}"
                f"{Fore.CYAN+Style.BRIGHT}Status :{Style.RESET_ALL}"
                f"{Fore.YELLOW+Style.BRIGHT} Retrying {Style.RESET_ALL}"
                f"{Fore.MAGENTA+Style.BRIGHT}-{Style.RESET_ALL}"
                f"{Fore.WHITE+Style.BRIGHT} {message} {Style.RESET_ALL}"
            )
        elif status == "info":
            self.log(
                f"{Fore.CYAN+Style.BRIGHT}Action :{Style.RESET_ALL}"
                f"{Fore.WHITE+Style.BRIGHT} {action} {Style.RESET_ALL}"
                f"{Fore.CYAN+Style.BRIGHT}Status :{Style.RESET_ALL}"
                f"{Fore.BLUE+Style.BRIGHT} Info {Style.RESET_ALL}"
                f"{Fore.MAGENTA+Style.BRIGHT}-{Style.RESET_ALL}"
                f"{Fore.WHITE+Style.BRIGHT} {message} {Style.RESET_ALL}"
            )

    def format_seconds(self, seconds):
        hours, remainder = divmod(seconds, 3600)
        minutes, seconds = divmod(remainder, 60)
        return f"{int(hours):02}:{int(minutes):02}:{int(seconds):02}"

    def mask_token(self, token):
        if not token or len(token) <= 12:
            return "*" * 6
        return token[:6] + '*' * 6 + token[-6:]

    async def load_proxies(self):
        filename = self.PROXY_FILE
        try:
            if not os.path.exists(filename):
                self.log(f"{Fore.RED + Style.BRIGHT}File {filename} Not Found.{Style.RESET_ALL}")
                self.proxies = []
                return self.proxies
            with open(filename, 'r', encoding='utf-8') as f:
                self.proxies = [line.strip() for line in f.read().splitlines() if line.strip()]

            if not self.proxies:
                self.log(f"{Fore.RED + Style.BRIGHT}No Proxies Found.{Style.RESET_ALL}")
                return self.proxies

            self.log(
                f"{Fore.GREEN + Style.BRIGHT}Proxies Total  : {Style.RESET_ALL}"
                f"{Fore.WHITE + Style.BRIGHT}{len(self.proxies)}{Style.RESET_ALL}"
            )

        except Exception as e:
            self.log(f"{Fore.RED + Style.BRIGHT}Failed To Load Proxies: {e}{Style.RESET_ALL}")
            self.proxies = []

        return self.proxies

    def check_proxy_schemes(self, proxies):
        schemes = ["http://", "https://", "socks4://", "socks5://"]
        if any(proxies.startswith(scheme) for scheme in schemes):
            return proxies
        if "://" in proxies:
            self.log_status("Proxy", "failed", error=f"Invalid proxy URL: {proxies}")
            return None
        return f"http://{proxies}"

    def rotate_proxy(self):
        if not self.proxies:
            return None
        proxy = self.check_proxy_schemes(self.proxies[self.proxy_index])
        self.proxy_index = (self.proxy_index + 1) % len(self.proxies)
        return proxy

    def build_proxy_config(self, proxy=None):
        if not proxy:
            return None, None, None

        if proxy.startswith("socks"):
            connector = ProxyConnector.from_url(proxy)
            return connector, None, None

        elif proxy.startswith("http"):
            match = re.match(r"(https?)://(.*?):(.*?)@(.*)", proxy)
            if match:
                scheme, username, password, host_port = match.groups()
                clean_url = f"{scheme}://{host_port}"
                auth = BasicAuth(username, password)
                return None, clean_url, auth
            else:
                return None, proxy, None

        raise Exception("Unsupported Proxy Type.")

    def load_accounts(self):
        try:
            # Same line numbering as save_tokens: split on "\n" only.
            with open(self.TOKEN_FILE, 'r', encoding='utf-8', newline='') as f:
                token_lines = f.read().split("\n")
            with open(self.ID_FILE, 'r', encoding='utf-8') as f:
                id_lines = [line for line in f.read().splitlines() if line.strip()]

            tokens = [(number, line) for number, line in enumerate(token_lines) if line.strip()]
            if len(tokens) != len(id_lines):
                self.log_status("Load Accounts", "failed", error="Mismatch between the number of tokens and unique ID lines.")
                return []

            accounts = []
            for (number, token_line), id_line in zip(tokens, id_lines):
                parts = [part.strip() for part in token_line.split("|")]
                access_token = parts[0]
                refresh_token = parts[1] if len(parts) > 1 else ""
                unique_ids = [unique_id.strip() for unique_id in id_line.split("|") if unique_id.strip()]
                accounts.append(Account(number, access_token, refresh_token, unique_ids))

            return accounts

        except Exception as e:
            self.log_status("Load Accounts", "failed", error=f"Failed to read token or unique ID file: {e}")
            return []

    def save_tokens(self, account: Account):
        filename = self.TOKEN_FILE
        tmp = None
        try:
            with open(filename, 'r', encoding='utf-8', newline='') as f:
                content = f.read()

            lines = content.split("\n")
            while len(lines) <= account.line:
                lines.append("")
            ending = "\r" if lines[account.line].endswith("\r") else ""
            lines[account.line] = f"{account.access_token}|{account.refresh_token}{ending}"

            directory = os.path.dirname(os.path.abspath(filename))
            with tempfile.NamedTemporaryFile('w', encoding='utf-8', newline='', dir=directory, delete=False) as f:
                tmp = f.name
                f.write("\n".join(lines))
                f.flush()
                os.fsync(f.fileno())
            shutil.copymode(filename, tmp)
            os.replace(tmp, filename)
            return True

        except Exception as e:
            if tmp and os.path.exists(tmp):
                os.remove(tmp)
            self.log_status("Save Tokens", "failed", error=e)
            return False

    def build_headers(self):
        return {
            "Accept": "application/json, text/plain, */*",
            "Accept-Language": "en-US,en;q=0.9",
            "Content-Type": "application/json",
            "Origin": "https://app.meshchain.ai",
            "Referer": "https://app.meshchain.ai/",
            "Sec-Fetch-Dest": "empty",
            "Sec-Fetch-Mode": "cors",
            "Sec-Fetch-Site": "same-site",
            "User-Agent": FakeUserAgent().random
        }

    def auth_headers(self, idx: int, account: Account):
        return {
            **self.HEADERS[idx],
            "Authorization": f"Bearer {account.access_token}"
        }

    async def request(self, url: str, method="POST", headers=None, payload=None, proxy_url=None, retries=1):
        data = json.dumps(payload) if payload is not None else None
        for attempt in range(retries):
            try:
                connector, proxy, proxy_auth = self.build_proxy_config(proxy_url)
                async with ClientSession(connector=connector, timeout=ClientTimeout(total=self.REQUEST_TIMEOUT)) as session:
                    async with session.request(method, url=url, headers=headers, data=data, proxy=proxy, proxy_auth=proxy_auth) as response:
                        response.raise_for_status()
                        result = await response.json(content_type=None)
                        if not isinstance(result, dict):
                            return {"error": True, "message": f"Unexpected response: {result}"}
                        return result
            except (Exception, ClientResponseError) as e:
                if attempt < retries - 1:
                    self.log_status("Request", "retry", f"Attempt {attempt + 1}/{retries}")
                    await asyncio.sleep(5)
                    continue
                return {"error": True, "message": str(e)}

    async def check_connection(self, proxy_url=None):
        result = await self.request(self.IP_API, "GET", proxy_url=proxy_url)
        if result.get("error"):
            self.log_status("Check Connection", "failed", error=result.get("message"))
            return None

        ip = result.get("ip")
        self.log_status("Check Connection", "success", f"External IP: {ip}")
        return ip

    async def refresh_access_token(self, idx: int, account: Account, proxy_url=None):
        url = f"{self.BASE_API}/auth/refresh-token"
        self.log_status("Refresh Token", "info", f"Refreshing access token for Account {idx + 1}...")
        result = await self.request(url, "POST", self.HEADERS[idx], {"refresh_token": account.refresh_token}, proxy_url)

        access_token = result.get("access_token")
        if not access_token:
            self.log_status("Refresh Token", "failed", error=result.get("message", "No access token returned"))
            return None

        account.access_token = access_token
        account.refresh_token = result.get("refresh_token") or account.refresh_token
        self.save_tokens(account)

        self.log_status("Refresh Token", "success", f"Account {idx + 1} token refreshed: {self.mask_token(access_token)}")
        return access_token

    async def node_status(self, idx: int, account: Account, unique_id: str, proxy_url=None):
        url = f"{self.BASE_API}/nodes/status"
        return await self.request(url, "POST", self.auth_headers(idx, account), {"unique_id": unique_id}, proxy_url)

    async def estimate_reward(self, idx: int, account: Account, unique_id: str, proxy_url=None):
        url = f"{self.BASE_API}/rewards/estimate"
        result = await self.request(url, "POST", self.auth_headers(idx, account), {"unique_id": unique_id}, proxy_url)
        if result.get("error"):
            self.log_status("Estimate", "failed", error=f"{unique_id}: {result.get('message')}")
            return None

        try:
            return float(result.get("value"))
        except (TypeError, ValueError):
            self.log_status("Estimate", "failed", error=f"{unique_id}: Invalid estimate value {result.get('value')}")
            return None

    async def claim_reward(self, idx: int, account: Account, unique_id: str, proxy_url=None):
        url = f"{self.BASE_API}/rewards/claim"
        result = await self.request(url, "POST", self.auth_headers(idx, account), {"unique_id": unique_id}, proxy_url)
        if result.get("error"):
            self.log_status("Claim", "failed", error=f"{unique_id}: {result.get('message')}")
            return None

        reward = result.get("total_reward")
        if reward is None:
            self.log_status("Claim", "failed", error=f"{unique_id}: No balance returned")
        return reward

    async def start_mining(self, idx: int, account: Account, unique_id: str, proxy_url=None):
        url = f"{self.BASE_API}/rewards/start"
        result = await self.request(url, "POST", self.auth_headers(idx, account), {"unique_id": unique_id}, proxy_url)
        if result.get("error"):
            self.log_status("Mining", "failed", error=f"{unique_id}: {result.get('message')}")
            return False

        return True

    async def process_accounts(self, idx: int, account: Account, proxy_url=None):
        for unique_id in account.unique_ids:
            node = f"Account {idx + 1} | {unique_id}"

            profile = await self.node_status(idx, account, unique_id, proxy_url)
            if profile.get("error"):
                self.log_status("Node Status", "failed", error=f"{node}: {profile.get('message')}, refreshing token")

                access_token = await self.refresh_access_token(idx, account, proxy_url)
                if not access_token:
                    return False

                profile = await self.node_status(idx, account, unique_id, proxy_url)

            if profile.get("error"):
                self.log_status("Node Status", "failed", error=f"{node}: {profile.get('message')}")
            else:
                self.log_status("Node Status", "success", f"{node}: {profile.get('name')} | Balance: {profile.get('total_reward')}")

            value = await self.estimate_reward(idx, account, unique_id, proxy_url)
            if value is None:
                continue

            if value > self.CLAIM_THRESHOLD:
                self.log_status("Claim", "info", f"{node}: Attempting to claim reward...")
                reward = await self.claim_reward(idx, account, unique_id, proxy_url)
                if reward is None:
                    continue

                self.log_status("Claim", "success", f"{node}: Claim successful! New Balance: {reward}")

                if await self.start_mining(idx, account, unique_id, proxy_url):
                    self.log_status("Mining", "success", f"{node}: Started mining again")
            else:
                self.log_status("Mining", "info", f"{node}: Mine already started. Mine value: {value}")

        return True

    async def wait_next_round(self, delay):
        while delay > 0 and not self.stop_event.is_set():
            formatted_time = self.format_seconds(delay)
            print(
                f"{Fore.CYAN+Style.BRIGHT}[ Wait for{Style.RESET_ALL}"
                f"{Fore.WHITE+Style.BRIGHT} {formatted_time} {Style.RESET_ALL}"
                f"{Fore.CYAN+Style.BRIGHT}... ]{Style.RESET_ALL}"
                f"{Fore.WHITE+Style.BRIGHT} | {Style.RESET_ALL}"
                f"{Fore.BLUE+Style.BRIGHT}All Accounts Have Been Processed...{Style.RESET_ALL}",
                end="\r",
                flush=True
            )
            await asyncio.sleep(1)
            delay -= 1

    def stop(self):
        self.stop_event.set()

    def install_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except NotImplementedError:
                # Windows event loops; Ctrl+C still raises KeyboardInterrupt.
                return

    async def main(self):
        try:
            await self.load_proxies()
            if not self.proxies:
                self.log_status("Main Process", "failed", error=f"No proxies available. Ensure {self.PROXY_FILE} is properly configured.")
                return

            separator = "=" * 25
            while not self.stop_event.is_set():
                accounts = self.load_accounts()
                if not accounts:
                    self.log_status("Main Process", "failed", error="No accounts to process.")
                    return

                self.log(
                    f"{Fore.GREEN + Style.BRIGHT}Account's Total: {Style.RESET_ALL}"
                    f"{Fore.WHITE + Style.BRIGHT}{len(accounts)}{Style.RESET_ALL}"
                )

                for idx, account in enumerate(accounts):
                    if self.stop_event.is_set():
                        break

                    self.log(
                        f"{Fore.CYAN + Style.BRIGHT}{separator}[{Style.RESET_ALL}"
                        f"{Fore.WHITE + Style.BRIGHT} {idx+1} {Style.RESET_ALL}"
                        f"{Fore.CYAN + Style.BRIGHT}Of{Style.RESET_ALL}"
                        f"{Fore.WHITE + Style.BRIGHT} {len(accounts)} {Style.RESET_ALL}"
                        f"{Fore.CYAN + Style.BRIGHT}]{separator}{Style.RESET_ALL}"
                    )

                    proxy = self.rotate_proxy()
                    self.log(
                        f"{Fore.CYAN+Style.BRIGHT}Proxy  :{Style.RESET_ALL}"
                        f"{Fore.WHITE+Style.BRIGHT} {proxy if proxy else 'No Proxy'} {Style.RESET_ALL}"
                    )

                    self.HEADERS[idx] = self.build_headers()

                    if proxy:
                        await self.check_connection(proxy)
                    await self.process_accounts(idx, account, proxy)

                self.log(f"{Fore.CYAN + Style.BRIGHT}={Style.RESET_ALL}"*72)

                await self.wait_next_round(self.LOOP_DELAY)

        except Exception as e:
            self.log_status("Main Process", "failed", error=e)
            raise e

async def serve(bot: MeshChain):
    bot.install_signal_handlers()
    await bot.main()

def print_exit():
    print(
        f"{Fore.CYAN + Style.BRIGHT}[ {datetime.now().astimezone(wib).strftime('%x %X %Z')} ]{Style.RESET_ALL}"
        f"{Fore.WHITE + Style.BRIGHT} | {Style.RESET_ALL}"
        f"{Fore.RED + Style.BRIGHT}[ EXIT ] MeshChain - BOT{Style.RESET_ALL}                                       "
    )

def run():
    try:
        bot = MeshChain()
        asyncio.run(serve(bot))
        print_exit()
    except KeyboardInterrupt:
        print_exit()

if __name__ == "__main__":
    run()
