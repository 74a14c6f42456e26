from leaderboard.providers.fetch.retail_page_fetcher import RetailPageFetcher

__all__ = ["RetailPageFetcher"]
